"""Model layer: one MM-PBSA run from topology to summary."""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Deque, Iterable, Optional

import numpy as np

from respbsa.config import Settings
from respbsa.errors import GeometryError, RespbsaError
from respbsa.model.state import FrameGeometry, GroupSelection, SystemTopology
from respbsa.services.aggregate import FrameTerms, ResultsAggregator, ResultsSummary
from respbsa.services.apbs import SolverAdapter, SolverClient, zero_solvation
from respbsa.services.dump import parse_topology_dump, read_dump
from respbsa.services.mesh import plan_frame_meshes
from respbsa.services.mm import compute_frame, debye_kappa
from respbsa.services.qrv import ParameterTable, ensure_param_file
from respbsa.services.trajectory import frame_name

logger = logging.getLogger(__name__)


def _with_frame(exc: RespbsaError, frame: FrameGeometry, name: str) -> RespbsaError:
    if isinstance(exc.details, dict):
        details = dict(exc.details)
    elif exc.details is None:
        details = {}
    else:
        details = {"info": exc.details}
    details.setdefault("frame", name)
    details.setdefault("frame_index", frame.index)
    return type(exc)(exc.code, exc.message, details)


class Model:
    """Run state and the per-frame unit of work.

    Attributes
    ----------
    settings
        Immutable run settings.
    params
        Parameter table, available after :meth:`prepare`.
    last_coords
        Parameter-ordered coordinates (nm) of the latest frame.
    """

    def __init__(
        self,
        settings: Settings,
        solver: Optional[SolverClient] = None,
        submit: Optional[Callable[..., Future]] = None,
    ) -> None:
        """Initialize the model.

        Parameters
        ----------
        settings
            Run settings.
        solver
            Solver client; without one solvation terms are zero (MM only).
        submit
            Optional executor submission function; frames run concurrently
            when given.
        """

        self.settings = settings
        self._adapter = SolverAdapter(solver, settings) if solver is not None else None
        self._submit = submit
        self.system_name = ""
        self.workdir: Optional[Path] = None
        self.system: Optional[SystemTopology] = None
        self.params: Optional[ParameterTable] = None
        self.kappa = 0.0
        self.last_coords: Optional[np.ndarray] = None
        self._aggregator: Optional[ResultsAggregator] = None

    def prepare(
        self,
        dump_path: str,
        receptor: GroupSelection,
        ligand: GroupSelection,
        out_dir: str,
        system_name: str,
    ) -> ParameterTable:
        """Parse the topology and build (or reuse) the parameter file.

        Parameters
        ----------
        dump_path
            Topology dump text file.
        receptor, ligand
            Index groups of the two binding partners.
        out_dir
            Directory receiving the parameter file and the frame directory.
        system_name
            Run name used for file names.

        Returns
        -------
        ParameterTable
            Parameters over receptor and ligand atoms.
        """

        topology = parse_topology_dump(read_dump(dump_path), self.settings.default_radius)
        self.system = topology.expand()
        logger.info(
            "System has %d atoms in %d residues; receptor %d atoms, ligand %d atoms",
            self.system.natoms,
            len(self.system.residues),
            len(receptor),
            len(ligand),
        )
        root = Path(out_dir)
        root.mkdir(parents=True, exist_ok=True)
        self.params = ensure_param_file(
            str(root / f"{system_name}.qrv"),
            dump_path,
            self.system,
            receptor,
            ligand,
            self.settings.radius_policy,
            self.settings.default_radius,
        )
        self.system_name = system_name
        self.workdir = root / system_name
        self.workdir.mkdir(parents=True, exist_ok=True)
        if self.settings.use_debye_huckel:
            self.kappa = debye_kappa(
                self.settings.temperature, self.settings.pb.sdie, self.settings.pb.ions
            )
        else:
            self.kappa = 0.0
        self._aggregator = ResultsAggregator(
            self.params.residue_index,
            self.params.n_residues,
            self.params.receptor_positions,
            self.params.ligand_positions,
        )
        if self._adapter is None:
            logger.warning("No solver configured; PB and SA terms are zero")
        return self.params

    def _require_prepared(self) -> ParameterTable:
        if self.params is None or self._aggregator is None:
            raise RespbsaError("not_prepared", "Model.prepare must run before frames")
        return self.params

    def compute_frame(self, frame: FrameGeometry) -> FrameTerms:
        """Compute MM and solvation terms of one frame.

        Raises
        ------
        RespbsaError
            Any failure, with the frame name and index added to ``details``.
        """

        params = self._require_prepared()
        name = frame_name(self.system_name, frame.time)
        try:
            if frame.coords.shape[0] <= int(params.atom_indices.max()):
                raise GeometryError(
                    "frame_too_small",
                    "Frame has fewer atoms than the topology selection",
                    {"atoms": int(frame.coords.shape[0])},
                )
            coords = frame.coords[params.atom_indices]
            mm = compute_frame(
                coords,
                params.charges,
                params.types,
                params.table,
                params.receptor_positions,
                params.ligand_positions,
                params.residue_index,
                params.n_residues,
                self.settings.pb.pdie,
                self.settings.use_debye_huckel,
                self.kappa,
                self.settings.cutoff,
            )
            counts = {
                "com": params.natoms,
                "rec": int(params.receptor_positions.size),
                "lig": int(params.ligand_positions.size),
            }
            if self._adapter is None:
                solvation = zero_solvation(counts)
            else:
                meshes = plan_frame_meshes(
                    coords,
                    params.radii,
                    params.receptor_positions,
                    params.ligand_positions,
                    self.settings.mesh,
                )
                solvation = self._adapter.solve(self.workdir, name, coords, params, meshes)
        except RespbsaError as exc:
            raise _with_frame(exc, frame, name) from exc
        return FrameTerms(
            index=frame.index,
            time=frame.time,
            name=name,
            mm=mm,
            solvation=solvation,
            coords=coords,
        )

    def run(self, frames: Iterable[FrameGeometry]) -> ResultsSummary:
        """Process frames and summarize.

        Only this method feeds the aggregator, so concurrent frames never
        touch it directly.

        Parameters
        ----------
        frames
            Frames in trajectory order.

        Returns
        -------
        ResultsSummary
            Averages and per-frame data.
        """

        self._require_prepared()
        latest = [float("-inf")]

        def record(terms: FrameTerms) -> None:
            self._aggregator.add_frame(terms)
            if terms.time >= latest[0]:
                latest[0] = terms.time
                self.last_coords = terms.coords
            logger.info("Processed frame %s", terms.name)

        if self._submit is None or self.settings.jobs <= 1:
            for frame in frames:
                record(self.compute_frame(frame))
        else:
            pending: Deque[Future] = deque()
            window = 2 * self.settings.jobs
            for frame in frames:
                pending.append(self._submit(self.compute_frame, frame))
                while len(pending) >= window:
                    record(pending.popleft().result())
            while pending:
                record(pending.popleft().result())
        return self._aggregator.summarize(
            self.settings.temperature,
            self.settings.use_entropy,
            self.settings.concentration_scale,
        )
