"""Reading and writing the intermediate parameter (qrv) file."""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import numpy as np

from respbsa.config import DUMP_HASH_FILENAME, QRV_HASH_FILENAME, SELECTION_HASH_FILENAME
from respbsa.errors import CacheInconsistencyError, GeometryError, InputParseError
from respbsa.model.state import GroupSelection, NonbondedTypeTable, SystemTopology
from respbsa.services.lj import format_table_rows, parse_table_rows
from respbsa.services.radius import lookup_radius

logger = logging.getLogger(__name__)

_ATOM_LINE_RE = re.compile(
    r'^\s*(\d+)\s+(\S+)\s+(\S+)\s+(\d+)\s+(\S+)\s+(\S+)\s+(\d+)\s+"(\d+):([^"]*)"\s+(\S+)\s+(Rec|Lig)\s*$'
)


@dataclass(frozen=True, eq=False)
class ParameterTable:
    """Per-atom parameters over receptor and ligand atoms in file order.

    Attributes
    ----------
    receptor_name, ligand_name
        Group labels from the file header.
    table
        Nonbonded C6/C12 table.
    charges, radii, types, sigma, epsilon
        Per-atom arrays.
    atom_indices
        Zero-based system atom indices.
    residue_index
        Residue of each atom, compacted to 0..R-1.
    residue_labels
        ``nr:name`` label of each compacted residue.
    atom_names
        Atom display names.
    is_receptor
        True for receptor atoms.
    """

    receptor_name: str
    ligand_name: str
    table: NonbondedTypeTable
    charges: np.ndarray
    radii: np.ndarray
    types: np.ndarray
    sigma: np.ndarray
    epsilon: np.ndarray
    atom_indices: np.ndarray
    residue_index: np.ndarray
    residue_labels: List[str]
    atom_names: List[str]
    is_receptor: np.ndarray

    @property
    def natoms(self) -> int:
        return int(self.charges.shape[0])

    @property
    def n_residues(self) -> int:
        return len(self.residue_labels)

    @property
    def receptor_positions(self) -> np.ndarray:
        return np.flatnonzero(self.is_receptor)

    @property
    def ligand_positions(self) -> np.ndarray:
        return np.flatnonzero(~self.is_receptor)


def file_sha256(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


def selection_sha256(
    receptor: GroupSelection,
    ligand: GroupSelection,
    radius_policy: str,
    default_radius: float,
) -> str:
    """Hash the inputs besides the dump that change the parameter file."""

    digest = hashlib.sha256()
    for group in (receptor, ligand):
        digest.update(group.name.encode("utf-8"))
        digest.update(b"\0")
        digest.update(np.asarray(group.indices, dtype=np.int64).tobytes())
        digest.update(b"\0")
    digest.update(f"{radius_policy}:{default_radius!r}".encode("utf-8"))
    return digest.hexdigest()


def _validate_groups(
    system: SystemTopology, receptor: GroupSelection, ligand: GroupSelection
) -> None:
    for group in (receptor, ligand):
        if len(group) == 0:
            raise GeometryError("empty_group", f"Index group '{group.name}' has no atoms")
        out_of_range = [index for index in group.indices if index >= system.natoms]
        if out_of_range:
            raise InputParseError(
                "ndx_index_out_of_range",
                f"Index group '{group.name}' references atoms beyond the topology",
                {"natoms": system.natoms, "first": out_of_range[0] + 1},
            )
    overlap = receptor.members & ligand.members
    if overlap:
        raise GeometryError(
            "overlapping_groups",
            f"Receptor '{receptor.name}' and ligand '{ligand.name}' share atoms",
            {"count": len(overlap), "first": min(overlap) + 1},
        )


def format_param_lines(
    system: SystemTopology,
    receptor: GroupSelection,
    ligand: GroupSelection,
    radius_policy: str,
    default_radius: float,
) -> List[str]:
    """Build the qrv file lines.

    Atoms are written in system order; only receptor and ligand atoms get a
    record.
    """

    _validate_groups(system, receptor, ligand)
    lines = [f"Receptor: {receptor.name}", f"Ligand: {ligand.name}", str(system.table.ntypes)]
    lines.extend(format_table_rows(system.table))
    feature = 0
    for atom in system.atoms:
        if atom.global_index in receptor:
            tag = "Rec"
        elif atom.global_index in ligand:
            tag = "Lig"
        else:
            continue
        feature += 1
        residue = system.residues[atom.residue_index]
        radius = lookup_radius(atom, radius_policy, default_radius)
        name = atom.resolved_name or atom.name
        lines.append(
            f"{feature:6d} {atom.charge:9.5f} {radius:9.6f} {atom.type_index:6d} "
            f"{atom.sigma:9.6f} {atom.epsilon:9.6f} {atom.global_index + 1:6d} "
            f"\"{residue.label}\" {name:>6}  {tag}"
        )
    return lines


def write_param_file(
    path: str,
    system: SystemTopology,
    receptor: GroupSelection,
    ligand: GroupSelection,
    radius_policy: str = "mbondi",
    default_radius: float = 1.2,
) -> None:
    """Write the parameter file atomically.

    The text goes to a temporary file in the target directory, which is
    then renamed over ``path``.
    """

    lines = format_param_lines(system, receptor, ligand, radius_policy, default_radius)
    target = Path(path)
    handle, temp_path = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
    )
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write("\n".join(lines))
            stream.write("\n")
        os.replace(temp_path, target)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
    logger.info("Wrote %d atom records to %s", len(lines) - 3 - system.table.ntypes, target)


def read_param_file(path: str) -> ParameterTable:
    """Read a parameter file back into per-atom arrays.

    Parameters
    ----------
    path
        Path to the qrv file.

    Returns
    -------
    ParameterTable
        Arrays over receptor and ligand atoms in file order.

    Raises
    ------
    InputParseError
        If the header, table or an atom record is malformed.
    """

    lines = Path(path).read_text(encoding="utf-8").splitlines()
    if len(lines) < 3:
        raise InputParseError("qrv_truncated", f"Parameter file {path} is truncated")
    receptor_name = lines[0].split(":", 1)[1].strip() if ":" in lines[0] else lines[0]
    ligand_name = lines[1].split(":", 1)[1].strip() if ":" in lines[1] else lines[1]
    try:
        ntypes = int(lines[2].strip())
    except ValueError as exc:
        raise InputParseError(
            "qrv_bad_type_count", f"{path}:3: invalid type count", lines[2]
        ) from exc
    if len(lines) < 3 + ntypes:
        raise InputParseError("qrv_truncated", f"Parameter file {path} is truncated")
    table = parse_table_rows(lines[3 : 3 + ntypes], ntypes)

    charges: List[float] = []
    radii: List[float] = []
    types: List[int] = []
    sigma: List[float] = []
    epsilon: List[float] = []
    atom_indices: List[int] = []
    labels: List[str] = []
    names: List[str] = []
    is_receptor: List[bool] = []
    for line_number, line in enumerate(lines[3 + ntypes :], start=4 + ntypes):
        if not line.strip():
            continue
        match = _ATOM_LINE_RE.match(line)
        if match is None:
            raise InputParseError(
                "qrv_bad_atom_line", f"{path}:{line_number}: malformed atom record", line
            )
        try:
            charges.append(float(match.group(2)))
            radii.append(float(match.group(3)))
            sigma.append(float(match.group(5)))
            epsilon.append(float(match.group(6)))
        except ValueError as exc:
            raise InputParseError(
                "qrv_bad_atom_line", f"{path}:{line_number}: non-numeric field", line
            ) from exc
        type_index = int(match.group(4))
        if type_index >= ntypes:
            raise InputParseError(
                "qrv_bad_atom_line",
                f"{path}:{line_number}: type {type_index} exceeds table size {ntypes}",
            )
        types.append(type_index)
        atom_indices.append(int(match.group(7)) - 1)
        labels.append(f"{match.group(8)}:{match.group(9)}")
        names.append(match.group(10))
        is_receptor.append(match.group(11) == "Rec")

    if not charges:
        raise InputParseError("qrv_no_atoms", f"Parameter file {path} has no atom records")

    residue_labels: List[str] = []
    residue_index: List[int] = []
    positions = {}
    for label in labels:
        if label not in positions:
            positions[label] = len(residue_labels)
            residue_labels.append(label)
        residue_index.append(positions[label])

    return ParameterTable(
        receptor_name=receptor_name,
        ligand_name=ligand_name,
        table=table,
        charges=np.asarray(charges, dtype=float),
        radii=np.asarray(radii, dtype=float),
        types=np.asarray(types, dtype=np.int64),
        sigma=np.asarray(sigma, dtype=float),
        epsilon=np.asarray(epsilon, dtype=float),
        atom_indices=np.asarray(atom_indices, dtype=np.int64),
        residue_index=np.asarray(residue_index, dtype=np.int64),
        residue_labels=residue_labels,
        atom_names=names,
        is_receptor=np.asarray(is_receptor, dtype=bool),
    )


def _hash_path(qrv_path: Path, suffix: str) -> Path:
    return qrv_path.with_name(qrv_path.name + suffix)


def _read_hash(path: Path) -> Optional[str]:
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8").strip()


def check_param_cache(qrv_path: str, dump_path: str, selection_hash: str) -> None:
    """Validate a cached parameter file against stored hashes.

    Raises
    ------
    CacheInconsistencyError
        If the file or any stored hash is missing or differs.
    """

    target = Path(qrv_path)
    if not target.exists():
        raise CacheInconsistencyError("qrv_missing", f"No parameter file at {target}")
    expected = {
        "dump": (_hash_path(target, DUMP_HASH_FILENAME), file_sha256(dump_path)),
        "qrv": (_hash_path(target, QRV_HASH_FILENAME), file_sha256(str(target))),
        "selection": (_hash_path(target, SELECTION_HASH_FILENAME), selection_hash),
    }
    for source, (hash_file, current) in expected.items():
        stored = _read_hash(hash_file)
        if stored is None:
            raise CacheInconsistencyError(
                "hash_missing", f"No stored {source} hash", {"file": str(hash_file)}
            )
        if stored != current:
            raise CacheInconsistencyError(
                "hash_mismatch",
                f"Stored {source} hash does not match",
                {"file": str(hash_file), "stored": stored, "current": current},
            )


def ensure_param_file(
    qrv_path: str,
    dump_path: str,
    system: SystemTopology,
    receptor: GroupSelection,
    ligand: GroupSelection,
    radius_policy: str = "mbondi",
    default_radius: float = 1.2,
) -> ParameterTable:
    """Reuse or regenerate the parameter file, then read it.

    The cached file is reused only when the dump, qrv and selection hashes
    all match the stored ones.

    Returns
    -------
    ParameterTable
        Parsed parameter table.
    """

    target = Path(qrv_path)
    selection_hash = selection_sha256(receptor, ligand, radius_policy, default_radius)
    try:
        check_param_cache(str(target), dump_path, selection_hash)
        logger.info("Reusing parameter file %s", target)
    except CacheInconsistencyError as exc:
        logger.info("Regenerating parameter file %s (%s)", target, exc.message)
        for suffix in (DUMP_HASH_FILENAME, QRV_HASH_FILENAME, SELECTION_HASH_FILENAME):
            stale = _hash_path(target, suffix)
            if stale.exists():
                stale.unlink()
        write_param_file(str(target), system, receptor, ligand, radius_policy, default_radius)
        _hash_path(target, DUMP_HASH_FILENAME).write_text(
            file_sha256(dump_path) + "\n", encoding="utf-8"
        )
        _hash_path(target, QRV_HASH_FILENAME).write_text(
            file_sha256(str(target)) + "\n", encoding="utf-8"
        )
        _hash_path(target, SELECTION_HASH_FILENAME).write_text(
            selection_hash + "\n", encoding="utf-8"
        )
    return read_param_file(str(target))
