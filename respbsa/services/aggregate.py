"""Per-frame term accumulation and thermodynamic summaries."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from respbsa.config import GAS_CONSTANT_KJ
from respbsa.errors import RespbsaError
from respbsa.services.apbs import SubsystemSolvation
from respbsa.services.mm import MMTerms

logger = logging.getLogger(__name__)

TERMS = ("dh", "mm", "pb", "sa", "coulomb", "vdw")


@dataclass(frozen=True, eq=False)
class FrameTerms:
    """Everything computed for one frame.

    ``coords`` are the parameter-ordered coordinates (nm), kept for exports.
    """

    index: int
    time: float
    name: str
    mm: MMTerms
    solvation: Mapping[str, SubsystemSolvation]
    coords: Optional[np.ndarray] = None


@dataclass(frozen=True, eq=False)
class ResultsSummary:
    """Time averages, entropy, free energy and per-frame/per-residue data.

    Attributes
    ----------
    temperature
        Temperature (K).
    rt
        RT (kJ/mol) used for the entropy and Ki.
    times
        Frame times (ps), ascending.
    frame_names
        Frame file prefixes in the same order.
    series
        Per-frame totals keyed by term (``dh``, ``mm``, ``pb``, ``sa``,
        ``coulomb``, ``vdw``).
    residues
        Per-frame per-residue matrices (frames x residues) keyed by term.
    averages
        Time averages of ``series``.
    residue_averages
        Time averages of ``residues``.
    tds
        Entropy term TdS (kJ/mol).
    dg
        Free energy dH - TdS (kJ/mol).
    ki
        exp(dG/RT) times the concentration scale.
    """

    temperature: float
    rt: float
    times: np.ndarray
    frame_names: List[str]
    series: Dict[str, np.ndarray]
    residues: Dict[str, np.ndarray]
    averages: Dict[str, float]
    residue_averages: Dict[str, np.ndarray]
    tds: float
    dg: float
    ki: float

    @property
    def n_frames(self) -> int:
        return int(self.times.shape[0])


def exp_average_entropy(mm: Sequence[float], rt: float) -> float:
    """TdS = -RT ln <exp((MM - <MM>) / RT)>.

    The log-mean-exp is shifted by its largest exponent so large
    fluctuations do not overflow.

    Parameters
    ----------
    mm
        Per-frame MM interaction energies (kJ/mol).
    rt
        RT (kJ/mol).

    Returns
    -------
    float
        Entropy term TdS (kJ/mol).
    """

    values = np.asarray(mm, dtype=float)
    if values.size == 0:
        raise ValueError("Entropy needs at least one frame")
    exponents = (values - values.mean()) / rt
    shift = float(exponents.max())
    log_mean = shift + math.log(float(np.mean(np.exp(exponents - shift))))
    return -rt * log_mean


class ResultsAggregator:
    """Collect frame results; :meth:`add_frame` is the only mutation.

    Parameters
    ----------
    residue_index
        Residue of every atom in parameter-table (complex) order.
    n_residues
        Number of residues.
    receptor_positions, ligand_positions
        Complex positions of the receptor and ligand atoms, in sub-system
        order.
    """

    def __init__(
        self,
        residue_index: np.ndarray,
        n_residues: int,
        receptor_positions: np.ndarray,
        ligand_positions: np.ndarray,
    ) -> None:
        self.residue_index = np.asarray(residue_index, dtype=np.int64)
        self.n_residues = int(n_residues)
        self.receptor_positions = np.asarray(receptor_positions, dtype=np.int64)
        self.ligand_positions = np.asarray(ligand_positions, dtype=np.int64)
        self._frames: List[Dict[str, object]] = []

    def __len__(self) -> int:
        return len(self._frames)

    def _residue_delta(self, solvation: Mapping[str, SubsystemSolvation], attr: str) -> np.ndarray:
        com = getattr(solvation["com"], attr)
        rec = getattr(solvation["rec"], attr)
        lig = getattr(solvation["lig"], attr)
        delta = np.zeros(self.n_residues, dtype=float)
        for positions, part in ((self.receptor_positions, rec), (self.ligand_positions, lig)):
            if positions.size == 0:
                continue
            delta += np.bincount(
                self.residue_index[positions],
                weights=com[positions] - part,
                minlength=self.n_residues,
            )
        return delta

    def add_frame(self, terms: FrameTerms) -> None:
        """Record one frame's terms.

        Parameters
        ----------
        terms
            MM terms and per-atom solvation of the frame.
        """

        solvation = terms.solvation
        pb = solvation["com"].polar - solvation["rec"].polar - solvation["lig"].polar
        sa = solvation["com"].apolar - solvation["rec"].apolar - solvation["lig"].apolar
        mm = terms.mm.coulomb + terms.mm.vdw
        residue_mm = terms.mm.residue_coulomb + terms.mm.residue_vdw
        residue_pb = self._residue_delta(solvation, "polar_atoms")
        residue_sa = self._residue_delta(solvation, "apolar_atoms")
        self._frames.append(
            {
                "index": terms.index,
                "time": terms.time,
                "name": terms.name,
                "scalars": {
                    "dh": mm + pb + sa,
                    "mm": mm,
                    "pb": pb,
                    "sa": sa,
                    "coulomb": terms.mm.coulomb,
                    "vdw": terms.mm.vdw,
                },
                "residues": {
                    "dh": residue_mm + residue_pb + residue_sa,
                    "mm": residue_mm,
                    "pb": residue_pb,
                    "sa": residue_sa,
                    "coulomb": np.asarray(terms.mm.residue_coulomb, dtype=float),
                    "vdw": np.asarray(terms.mm.residue_vdw, dtype=float),
                },
            }
        )
        logger.debug(
            "Frame %s: dH %.3f MM %.3f PB %.3f SA %.3f kJ/mol",
            terms.name,
            mm + pb + sa,
            mm,
            pb,
            sa,
        )

    def summarize(
        self,
        temperature: float,
        use_entropy: bool = True,
        concentration_scale: float = 1e9,
    ) -> ResultsSummary:
        """Average the recorded frames.

        Frames are ordered by time before averaging, so the result does not
        depend on the order frames were added.

        Raises
        ------
        RespbsaError
            If no frame was recorded.
        """

        if not self._frames:
            raise RespbsaError("no_frames", "No frames were processed")
        frames = sorted(self._frames, key=lambda frame: (frame["time"], frame["index"]))
        rt = GAS_CONSTANT_KJ * temperature
        series = {
            term: np.asarray([frame["scalars"][term] for frame in frames], dtype=float)
            for term in TERMS
        }
        residues = {
            term: np.vstack([frame["residues"][term] for frame in frames]) for term in TERMS
        }
        averages = {term: float(values.mean()) for term, values in series.items()}
        residue_averages = {term: matrix.mean(axis=0) for term, matrix in residues.items()}
        tds = exp_average_entropy(series["mm"], rt) if use_entropy else 0.0
        dg = averages["dh"] - tds
        ki = float(np.exp(dg / rt)) * concentration_scale
        return ResultsSummary(
            temperature=temperature,
            rt=rt,
            times=np.asarray([frame["time"] for frame in frames], dtype=float),
            frame_names=[str(frame["name"]) for frame in frames],
            series=series,
            residues=residues,
            averages=averages,
            residue_averages=residue_averages,
            tds=tds,
            dg=dg,
            ki=ki,
        )
