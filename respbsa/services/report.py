"""Tables and file exports built from a results summary."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from respbsa.config import KJ_PER_KCAL, NM_TO_ANGSTROM
from respbsa.services.aggregate import TERMS, ResultsSummary
from respbsa.services.pdb_writer import AtomRow, write_pdb
from respbsa.services.qrv import ParameterTable
from respbsa.services.radius import guess_element

logger = logging.getLogger(__name__)

TERM_COLUMNS = {
    "dh": "dH",
    "mm": "dMM",
    "pb": "dPB",
    "sa": "dSA",
    "coulomb": "dElec",
    "vdw": "dVdW",
}


def summary_table(summary: ResultsSummary) -> pd.DataFrame:
    """Key/value table of the averaged terms."""

    rows = [
        ("dH", summary.averages["dh"], "dH = dMM + dPB + dSA (kJ/mol)"),
        ("dMM", summary.averages["mm"], "dMM = dElec + dVdW (kJ/mol)"),
        ("dPB", summary.averages["pb"], "kJ/mol"),
        ("dSA", summary.averages["sa"], "kJ/mol"),
        ("dElec", summary.averages["coulomb"], "kJ/mol"),
        ("dVdW", summary.averages["vdw"], "kJ/mol"),
        ("TdS", summary.tds, "kJ/mol"),
        ("dG", summary.dg, "dG = dH - TdS (kJ/mol)"),
        ("Ki", summary.ki, "Ki = exp(dG/RT) (scaled)"),
    ]
    return pd.DataFrame(rows, columns=["term", "value", "info"])


def trajectory_table(summary: ResultsSummary) -> pd.DataFrame:
    """Per-frame totals indexed by time (ns)."""

    data = {TERM_COLUMNS[term]: summary.series[term] for term in TERMS}
    frame = pd.DataFrame(data, index=pd.Index(summary.times / 1000.0, name="time_ns"))
    return frame


def residue_table(
    summary: ResultsSummary,
    params: ParameterTable,
    residues: Optional[Sequence[int]] = None,
) -> pd.DataFrame:
    """Time-averaged per-residue terms.

    Parameters
    ----------
    summary
        Run summary.
    params
        Parameter table providing residue labels.
    residues
        Residue indices to keep; all residues when omitted.

    Returns
    -------
    pandas.DataFrame
        One row per residue with its label and every term.
    """

    selected = np.arange(params.n_residues) if residues is None else np.asarray(residues, dtype=int)
    data = {
        "id": [params.residue_labels[i].split(":", 1)[0] for i in selected],
        "name": [params.residue_labels[i].split(":", 1)[1] for i in selected],
    }
    for term in TERMS:
        data[TERM_COLUMNS[term]] = summary.residue_averages[term][selected]
    return pd.DataFrame(data)


def residue_time_table(
    summary: ResultsSummary,
    params: ParameterTable,
    term: str,
    residues: Optional[Sequence[int]] = None,
) -> pd.DataFrame:
    """One term per residue over time (rows: frames, columns: residues)."""

    selected = np.arange(params.n_residues) if residues is None else np.asarray(residues, dtype=int)
    return pd.DataFrame(
        summary.residues[term][:, selected],
        index=pd.Index(summary.times / 1000.0, name="time_ns"),
        columns=[params.residue_labels[i] for i in selected],
    )


def residues_near_ligand(params: ParameterTable, coords: np.ndarray, cutoff: float) -> np.ndarray:
    """Residues with any atom within ``cutoff`` (nm) of a ligand atom.

    Ligand residues are always included.

    Parameters
    ----------
    params
        Parameter table.
    coords
        Coordinates (nm) indexed like ``params``.
    cutoff
        Distance cutoff (nm).

    Returns
    -------
    numpy.ndarray
        Sorted residue indices.
    """

    coords = np.asarray(coords, dtype=float)
    ligand = params.ligand_positions
    receptor = params.receptor_positions
    keep = set(int(i) for i in params.residue_index[ligand])
    if receptor.size and ligand.size:
        delta = coords[receptor][:, None, :] - coords[ligand][None, :, :]
        distance = np.sqrt(np.einsum("ijk,ijk->ij", delta, delta)).min(axis=1)
        keep.update(int(i) for i in params.residue_index[receptor[distance <= cutoff]])
    return np.asarray(sorted(keep), dtype=int)


def bfactor_pdb(summary: ResultsSummary, params: ParameterTable, coords: np.ndarray) -> str:
    """PDB text with -dH per residue (kcal/mol) in the B-factor column."""

    coords_a = np.asarray(coords, dtype=float) * NM_TO_ANGSTROM
    residue_dh = -summary.residue_averages["dh"] / KJ_PER_KCAL
    rows: List[AtomRow] = []
    for position in range(params.natoms):
        residue = int(params.residue_index[position])
        nr, resname = params.residue_labels[residue].split(":", 1)
        rows.append(
            AtomRow(
                serial=int(params.atom_indices[position]) + 1,
                name=params.atom_names[position],
                resname=resname,
                resid=int(nr),
                coords=tuple(coords_a[position]),
                bfactor=float(residue_dh[residue]),
                element=guess_element(params.atom_names[position]),
            )
        )
    remarks = [
        "The B-factor column holds the negated residue binding energy (dH) in kcal/mol",
    ]
    return write_pdb(rows, remarks)


def write_reports(
    summary: ResultsSummary,
    params: ParameterTable,
    out_dir: str,
    name: str,
    residues: Optional[Sequence[int]] = None,
    coords: Optional[np.ndarray] = None,
) -> List[Path]:
    """Write CSV tables (and the B-factor PDB when ``coords`` is given).

    Returns
    -------
    list
        Paths of the written files.
    """

    target = Path(out_dir)
    target.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    path = target / f"MMPBSA_{name}.csv"
    summary_table(summary).to_csv(path, index=False, float_format="%.6g")
    written.append(path)

    path = target / f"MMPBSA_{name}_traj.csv"
    trajectory_table(summary).to_csv(path, float_format="%.3f")
    written.append(path)

    path = target / f"MMPBSA_{name}_res.csv"
    residue_table(summary, params, residues).to_csv(path, index=False, float_format="%.3f")
    written.append(path)

    for term in TERMS:
        path = target / f"MMPBSA_{name}_res_{TERM_COLUMNS[term]}.csv"
        residue_time_table(summary, params, term, residues).to_csv(path, float_format="%.3f")
        written.append(path)

    if coords is not None:
        path = target / f"binding_energy_{name}.pdb"
        path.write_text(bfactor_pdb(summary, params, coords), encoding="utf-8")
        written.append(path)

    for path in written:
        logger.info("Wrote %s", path)
    return written
