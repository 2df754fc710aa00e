"""PQR and PDB formatting utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from respbsa.errors import PdbWriterError


@dataclass(frozen=True)
class AtomRow:
    """One atom line of a PQR or PDB file.

    Coordinates are in A.
    """

    serial: int
    name: str
    resname: str
    resid: int
    coords: Tuple[float, float, float]
    charge: float = 0.0
    radius: float = 0.0
    bfactor: float = 0.0
    element: Optional[str] = None


def _format_atom_name(name: str) -> str:
    name = (name or "").strip()
    if len(name) > 4:
        return name[:4]
    if len(name) < 4:
        return f" {name:<3}"
    return name


def _format_resname(resname: str) -> str:
    resname = (resname or "").strip()
    if len(resname) > 3:
        return resname[:3]
    return resname.ljust(3)


def _format_element(element: Optional[str]) -> str:
    element = (element or "").strip()
    if not element:
        return "  "
    if len(element) == 1:
        return f" {element.upper()}"
    return element[0].upper() + element[1].lower()


def write_pqr(rows: Iterable[AtomRow]) -> str:
    """Build whitespace-delimited PQR text.

    Fields are always separated by blanks so large coordinates never run
    together.

    Parameters
    ----------
    rows
        Atoms with charge (e) and radius (A).

    Returns
    -------
    str
        PQR text ending in a newline.

    Raises
    ------
    PdbWriterError
        If a row has invalid values.
    """

    lines: List[str] = []
    for row in rows:
        try:
            x, y, z = (float(value) for value in row.coords)
            name = (row.name or "").strip() or "X"
            resname = (row.resname or "").strip() or "UNK"
            line = (
                f"ATOM  {int(row.serial):6d} {name:<4} {resname:<4} {int(row.resid):5d} "
                f"{x:10.4f} {y:10.4f} {z:10.4f} {float(row.charge):9.5f} {float(row.radius):8.4f}"
            )
        except (TypeError, ValueError) as exc:
            raise PdbWriterError("pqr_format_failed", "Invalid atom row", str(exc)) from exc
        lines.append(line)
    lines.append("END")
    return "\n".join(lines) + "\n"


def write_pdb(rows: Iterable[AtomRow], remarks: Iterable[str] = ()) -> str:
    """Build a fixed-column PDB text block.

    Parameters
    ----------
    rows
        Atoms; ``bfactor`` fills the temperature-factor column.
    remarks
        Lines written as ``REMARK`` records before the atoms.

    Returns
    -------
    str
        PDB text ending in a newline.

    Raises
    ------
    PdbWriterError
        If a row has invalid values.
    """

    lines: List[str] = [f"REMARK   {remark}" for remark in remarks]
    for row in rows:
        try:
            serial = int(row.serial) % 100000
            name = _format_atom_name(row.name)
            resname = _format_resname(row.resname)
            resid = int(row.resid) % 10000
            x, y, z = (float(value) for value in row.coords)
            bfactor = float(row.bfactor)
            element = _format_element(row.element)
        except (TypeError, ValueError) as exc:
            raise PdbWriterError("pdb_format_failed", "Invalid atom row", str(exc)) from exc

        occ = 1.00
        line = (
            f"ATOM  "
            f"{serial:5d} "
            f"{name}"
            f" "
            f"{resname} "
            f" "
            f"{resid:4d}"
            f"    "
            f"{x:8.3f}{y:8.3f}{z:8.3f}"
            f"{occ:6.2f}{bfactor:6.2f}"
            f"          "
            f"{element:>2}"
        )
        lines.append(line)
    lines.append("END")
    return "\n".join(lines) + "\n"
