"""Poisson-Boltzmann solver adapter: input decks, invocation and output parsing."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol

import numpy as np

from respbsa.config import NM_TO_ANGSTROM, SUBSYSTEMS, PBSettings, SASettings, Settings
from respbsa.errors import SolverInvocationError
from respbsa.model.state import MeshSpec
from respbsa.services.pdb_writer import AtomRow, write_pqr
from respbsa.services.qrv import ParameterTable

logger = logging.getLogger(__name__)

_CALCULATION_RE = re.compile(r"^CALCULATION\s+#\d+\s+\(([^)]*)\)")
_MARKERS = ("CALCULATION ", "Atom", "SASA")


@dataclass(frozen=True, eq=False)
class SubsystemSolvation:
    """Per-atom solvation energies (kJ/mol) of one sub-system."""

    name: str
    polar_atoms: np.ndarray
    apolar_atoms: np.ndarray

    @property
    def polar(self) -> float:
        return float(self.polar_atoms.sum())

    @property
    def apolar(self) -> float:
        return float(self.apolar_atoms.sum())


class SolverClient(Protocol):
    """Runs one solver input deck and returns the solver's text output."""

    def run(self, input_path: str, cwd: str) -> str:
        ...


class ApbsClient:
    """Run the APBS executable as a subprocess."""

    def __init__(self, executable: str = "apbs", timeout: Optional[float] = None) -> None:
        self.executable = executable
        self.timeout = timeout

    def run(self, input_path: str, cwd: str) -> str:
        """Run the solver on ``input_path`` inside ``cwd``.

        Returns
        -------
        str
            Captured standard output.

        Raises
        ------
        SolverInvocationError
            If the executable is missing, times out or exits non-zero.
        """

        command = [self.executable, str(input_path)]
        logger.debug("Running %s in %s", " ".join(command), cwd)
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SolverInvocationError(
                "solver_not_found",
                f"Solver executable not found: {self.executable}",
                {"input": str(input_path)},
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise SolverInvocationError(
                "solver_timeout",
                f"Solver timed out after {self.timeout} s",
                {"input": str(input_path)},
            ) from exc
        if completed.returncode != 0:
            raise SolverInvocationError(
                "solver_failed",
                f"Solver exited with status {completed.returncode}",
                {"input": str(input_path), "stderr": completed.stderr[-2000:]},
            )
        return completed.stdout


def format_pb_block(pb: PBSettings, temperature: float, sdie: float) -> str:
    lines = [
        f"  temp  {temperature}",
        f"  pdie  {pb.pdie}",
        f"  sdie  {sdie}",
        f"  {pb.equation}",
        f"  bcfl  {pb.bcfl}",
        f"  srfm  {pb.srfm}",
        f"  chgm  {pb.chgm}",
        f"  swin  {pb.swin}",
        f"  srad  {pb.srad}",
        f"  sdens {pb.sdens}",
    ]
    for ion in pb.ions:
        lines.append(
            f"  ion charge {ion.charge:g} conc {ion.concentration} radius {ion.radius}"
        )
    lines.extend(["  calcforce  no", "  calcenergy comps"])
    return "\n".join(lines)


def format_sa_block(sa: SASettings, temperature: float) -> str:
    """APOLAR parameters; ``gamma 1`` makes the solver report raw SASA."""

    grid = " ".join(str(value) for value in sa.grid)
    return "\n".join(
        [
            f"  temp  {temperature}",
            f"  srfm  {sa.srfm}",
            f"  swin  {sa.swin}",
            f"  srad  {sa.srad}",
            "  gamma 1",
            f"  press  {sa.press}",
            f"  bconc  {sa.bconc}",
            f"  sdens {sa.sdens}",
            f"  dpos  {sa.dpos}",
            f"  grid  {grid}",
            "  calcforce no",
            "  calcenergy total",
        ]
    )


def format_mesh_block(mesh: MeshSpec, mol_index: int) -> str:
    nx, ny, nz = mesh.dime
    cx, cy, cz = mesh.coarse
    fx, fy, fz = mesh.fine
    x, y, z = mesh.center
    return "\n".join(
        [
            "  mg-auto",
            f"  mol {mol_index}",
            f"  dime   {nx}  {ny}  {nz}",
            f"  cglen  {cx:.3f}  {cy:.3f}  {cz:.3f}",
            f"  fglen  {fx:.3f}  {fy:.3f}  {fz:.3f}",
            f"  fgcent {x:.3f}  {y:.3f}  {z:.3f}",
            f"  cgcent {x:.3f}  {y:.3f}  {z:.3f}",
        ]
    )


def build_input_deck(frame_name: str, meshes: Mapping[str, MeshSpec], settings: Settings) -> str:
    """Build the solver input for one frame.

    The deck reads ``<frame>_com.pqr``, ``<frame>_rec.pqr`` and
    ``<frame>_lig.pqr`` and, for each sub-system, runs an electrostatics
    calculation in solvent and in vacuum (``sdie 1``) plus an apolar one.

    Parameters
    ----------
    frame_name
        Frame file prefix.
    meshes
        Grid geometry keyed by ``com``, ``rec`` and ``lig``.
    settings
        Run settings.

    Returns
    -------
    str
        Deck text.
    """

    parts = ["read"]
    parts.extend(f"  mol pqr {frame_name}_{name}.pqr" for name in SUBSYSTEMS)
    parts.append("end")
    solvated = format_pb_block(settings.pb, settings.temperature, settings.pb.sdie)
    vacuum = format_pb_block(settings.pb, settings.temperature, 1.0)
    apolar = format_sa_block(settings.sa, settings.temperature)
    for mol_index, name in enumerate(SUBSYSTEMS, start=1):
        calc = f"{frame_name}_{name}"
        grid = format_mesh_block(meshes[name], mol_index)
        parts.extend(
            [
                "",
                f"ELEC name {calc}",
                grid,
                solvated,
                "end",
                "",
                f"ELEC name {calc}_VAC",
                grid,
                vacuum,
                "end",
                "",
                f"APOLAR name {calc}_SAS",
                f"  mol {mol_index}",
                apolar,
                "end",
                "",
                f"print elecEnergy {calc} - {calc}_VAC end",
                f"print apolEnergy {calc}_SAS end",
            ]
        )
    parts.extend(["", "quit", ""])
    return "\n".join(parts)


def _collect_calculations(text: str) -> Dict[str, List[str]]:
    calculations: Dict[str, List[str]] = {}
    current: Optional[List[str]] = None
    for raw in text.splitlines():
        line = raw.strip()
        if not line.startswith(_MARKERS):
            continue
        if line.startswith("CALCULATION "):
            match = _CALCULATION_RE.match(line)
            current = None
            if match:
                current = calculations.setdefault(match.group(1).strip(), [])
            continue
        if current is not None:
            current.append(line)
    return calculations


def _values(
    lines: List[str], prefix: str, position: int, frame_name: str, name: str, calc: str
) -> np.ndarray:
    values = []
    for line in lines:
        if not line.startswith(prefix):
            continue
        tokens = line.split()
        try:
            values.append(float(tokens[position]))
        except (IndexError, ValueError) as exc:
            raise SolverInvocationError(
                "solver_output_malformed",
                f"Unparsable solver line in {calc}: {line}",
                {"frame": frame_name, "subsystem": name},
            ) from exc
    return np.asarray(values, dtype=float)


def parse_solver_output(
    text: str,
    frame_name: str,
    counts: Mapping[str, int],
    sa_settings: SASettings,
) -> Dict[str, SubsystemSolvation]:
    """Extract per-atom polar and apolar energies from solver output.

    Parameters
    ----------
    text
        Solver standard output.
    frame_name
        Frame file prefix used in calculation names.
    counts
        Atom count of each sub-system.
    sa_settings
        Surface tension and offset turning SASA into energy.

    Returns
    -------
    dict
        SubsystemSolvation keyed by ``com``, ``rec`` and ``lig``.

    Raises
    ------
    SolverInvocationError
        If a calculation is missing or has the wrong number of atoms.
    """

    calculations = _collect_calculations(text)
    results: Dict[str, SubsystemSolvation] = {}
    for name in SUBSYSTEMS:
        calc = f"{frame_name}_{name}"
        expected = counts[name]
        arrays = {}
        for label, prefix, position in (
            (calc, "Atom", -2),
            (f"{calc}_VAC", "Atom", -2),
            (f"{calc}_SAS", "SASA", -1),
        ):
            if label not in calculations:
                raise SolverInvocationError(
                    "solver_calculation_missing",
                    f"Solver output has no calculation {label}",
                    {"frame": frame_name, "subsystem": name},
                )
            values = _values(calculations[label], prefix, position, frame_name, name, label)
            if values.size != expected:
                raise SolverInvocationError(
                    "solver_atom_count",
                    f"Calculation {label} reports {values.size} atoms, expected {expected}",
                    {"frame": frame_name, "subsystem": name},
                )
            arrays[label] = values
        apolar = (
            sa_settings.surface_tension * arrays[f"{calc}_SAS"]
            + sa_settings.surface_offset / expected
        )
        results[name] = SubsystemSolvation(
            name=name,
            polar_atoms=arrays[calc] - arrays[f"{calc}_VAC"],
            apolar_atoms=apolar,
        )
    return results


def zero_solvation(counts: Mapping[str, int]) -> Dict[str, SubsystemSolvation]:
    return {
        name: SubsystemSolvation(
            name=name,
            polar_atoms=np.zeros(counts[name], dtype=float),
            apolar_atoms=np.zeros(counts[name], dtype=float),
        )
        for name in SUBSYSTEMS
    }


def subsystem_positions(params: ParameterTable) -> Dict[str, np.ndarray]:
    """Positions (into the parameter table) of each sub-system's atoms."""

    return {
        "com": np.arange(params.natoms),
        "rec": params.receptor_positions,
        "lig": params.ligand_positions,
    }


class SolverAdapter:
    """Write per-frame solver inputs, run the solver and parse its output."""

    def __init__(self, client: SolverClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def write_inputs(
        self,
        workdir: Path,
        frame_name: str,
        coords: np.ndarray,
        params: ParameterTable,
        meshes: Mapping[str, MeshSpec],
    ) -> Path:
        """Write the three PQR files and the deck for one frame.

        ``coords`` are in nm and indexed like ``params``.
        """

        coords_a = np.asarray(coords, dtype=float) * NM_TO_ANGSTROM
        for name, positions in subsystem_positions(params).items():
            rows = []
            for serial, position in enumerate(positions, start=1):
                nr, resname = params.residue_labels[params.residue_index[position]].split(":", 1)
                rows.append(
                    AtomRow(
                        serial=serial,
                        name=params.atom_names[position],
                        resname=resname,
                        resid=int(nr),
                        coords=tuple(coords_a[position]),
                        charge=float(params.charges[position]),
                        radius=float(params.radii[position]),
                    )
                )
            (workdir / f"{frame_name}_{name}.pqr").write_text(write_pqr(rows), encoding="utf-8")
        deck = workdir / f"{frame_name}.apbs"
        deck.write_text(build_input_deck(frame_name, meshes, self.settings), encoding="utf-8")
        return deck

    def solve(
        self,
        workdir: Path,
        frame_name: str,
        coords: np.ndarray,
        params: ParameterTable,
        meshes: Mapping[str, MeshSpec],
    ) -> Dict[str, SubsystemSolvation]:
        """Run the solver for one frame.

        Raises
        ------
        SolverInvocationError
            If the solver fails or its output is incomplete; ``details``
            names the frame.
        """

        deck = self.write_inputs(workdir, frame_name, coords, params, meshes)
        try:
            output = self.client.run(deck.name, str(workdir))
        except SolverInvocationError as exc:
            details = dict(exc.details) if isinstance(exc.details, dict) else {"info": exc.details}
            details.setdefault("frame", frame_name)
            raise SolverInvocationError(exc.code, exc.message, details) from exc
        (workdir / f"{frame_name}.out").write_text(output, encoding="utf-8")
        counts = {name: len(positions) for name, positions in subsystem_positions(params).items()}
        results = parse_solver_output(output, frame_name, counts, self.settings.sa)
        if not self.settings.preserve:
            for path in workdir.glob(f"{frame_name}[._]*"):
                path.unlink()
        return results
