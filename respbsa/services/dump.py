"""Parsing utilities for GROMACS topology dumps (``gmx dump -s``)."""

from __future__ import annotations

import logging
import mmap
import re
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Tuple

from respbsa.errors import InputParseError
from respbsa.model.state import (
    AtomRecord,
    MoleculeBlock,
    MoleculeType,
    ResidueRecord,
    Topology,
)
from respbsa.services.lj import build_type_table, derive_lj_by_type
from respbsa.services.radius import element_from_number, guess_element

logger = logging.getLogger(__name__)

_FLOAT = r"([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)"

_FFPARAMS_RE = re.compile(r"^\s*ffparams:")
_ATNR_RE = re.compile(r"^\s*atnr\s*=\s*(\d+)")
_LJ_RE = re.compile(
    r"functype\[\s*\d+\]\s*=\s*LJ_SR\s*,\s*c6\s*=\s*" + _FLOAT + r"\s*,\s*c12\s*=\s*" + _FLOAT
)
_MOLBLOCK_COUNT_RE = re.compile(r"^\s*#molblock\s*=\s*(\d+)")
_MOLBLOCK_RE = re.compile(r"^\s*molblock\s*\(\s*(\d+)\s*\):")
_BLOCK_MOLTYPE_RE = re.compile(r'^\s*moltype\s*=\s*(\d+)\s*"([^"]*)"')
_BLOCK_COUNT_RE = re.compile(r"^\s*#molecules\s*=\s*(\d+)")
_MOLTYPE_RE = re.compile(r"^\s*moltype\s*\(\s*(\d+)\s*\):")
_NAME_RE = re.compile(r'^\s*name\s*=\s*"([^"]*)"')
_ATOM_HEADER_RE = re.compile(r"^\s*atom\s*\(\s*(\d+)\s*\):")
_ATOM_TYPE_RE = re.compile(r"\btype=\s*(\d+)")
_ATOM_CHARGE_RE = re.compile(r"\bq=\s*" + _FLOAT)
_ATOM_RESIND_RE = re.compile(r"\bresind=\s*(\d+)")
_ATOM_NUMBER_RE = re.compile(r"\batomnumber=\s*(-?\d+)")
_ATOM_PARAM_RE = re.compile(r"^\s*atom\[\s*(\d+)\]\s*=\s*\{")
_ATOM_NAME_RE = re.compile(r'^\s*atom\[\s*(\d+)\]\s*=\s*\{\s*name\s*=\s*"([^"]*)"')
_RESIDUE_HEADER_RE = re.compile(r"^\s*residue\s*\(\s*(\d+)\s*\):")
_RESIDUE_RE = re.compile(
    r'^\s*residue\[\s*(\d+)\]\s*=\s*\{\s*name\s*=\s*"([^"]*)"\s*,\s*nr\s*=\s*(-?\d+)'
)
_ANGLE_HEADER_RE = re.compile(r"^\s*Angle:")
_NR_RE = re.compile(r"^\s*nr:\s*(\d+)")
_IATOMS_RE = re.compile(r"^\s*iatoms:")
_ANGLE_RE = re.compile(r"^\s*\d+\s+type=\s*\d+\s+\(ANGLES\)\s+(\d+)\s+(\d+)\s+(\d+)")


def read_dump(path: str) -> str:
    """Read a topology dump into text.

    Parameters
    ----------
    path
        Path to the dump file.

    Returns
    -------
    str
        Dump text.

    Raises
    ------
    InputParseError
        If the file is empty.
    """

    if Path(path).stat().st_size == 0:
        raise InputParseError("dump_empty", f"Topology dump is empty: {path}")
    with open(path, "rb") as handle:
        with mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ) as mm:
            return mm.read().decode("utf-8", errors="replace")


class LineScanner:
    """Locate dump sections by content over a list of lines.

    Every lookup takes the section name used in error messages; failures
    raise :class:`InputParseError` carrying the 1-based line number.
    """

    def __init__(self, lines: List[str]) -> None:
        self.lines = lines

    def __len__(self) -> int:
        return len(self.lines)

    def find_first(
        self,
        pattern: Pattern[str],
        section: str,
        start: int = 0,
        stop: Optional[int] = None,
    ) -> Tuple[int, "re.Match[str]"]:
        stop = len(self.lines) if stop is None else stop
        for index in range(start, stop):
            match = pattern.search(self.lines[index])
            if match:
                return index, match
        raise InputParseError(
            "dump_section_missing",
            f"Missing {section} section after line {start + 1}",
            {"section": section, "line": start + 1},
        )

    def find_optional(
        self, pattern: Pattern[str], start: int = 0, stop: Optional[int] = None
    ) -> Optional[Tuple[int, "re.Match[str]"]]:
        stop = len(self.lines) if stop is None else stop
        for index in range(start, stop):
            match = pattern.search(self.lines[index])
            if match:
                return index, match
        return None

    def find_all(
        self, pattern: Pattern[str], start: int = 0, stop: Optional[int] = None
    ) -> List[Tuple[int, "re.Match[str]"]]:
        stop = len(self.lines) if stop is None else stop
        return [
            (index, match)
            for index in range(start, stop)
            for match in [pattern.search(self.lines[index])]
            if match
        ]

    def match(self, pattern: Pattern[str], index: int, section: str) -> "re.Match[str]":
        if index >= len(self.lines):
            raise InputParseError(
                "dump_section_truncated",
                f"Unexpected end of dump in {section} section at line {index + 1}",
                {"section": section, "line": index + 1},
            )
        match = pattern.search(self.lines[index])
        if match is None:
            raise InputParseError(
                "dump_section_malformed",
                f"Malformed {section} line {index + 1}: {self.lines[index].strip()}",
                {"section": section, "line": index + 1},
            )
        return match


def _parse_type_table(scanner: LineScanner) -> Tuple[int, List[float], List[float]]:
    ff_line, _ = scanner.find_first(_FFPARAMS_RE, "ffparams")
    atnr_line, atnr_match = scanner.find_first(_ATNR_RE, "atnr", start=ff_line + 1)
    ntypes = int(atnr_match.group(1))
    if ntypes <= 0:
        raise InputParseError(
            "dump_section_malformed",
            f"atnr must be positive at line {atnr_line + 1}",
            {"section": "atnr", "line": atnr_line + 1},
        )
    c6_values: List[float] = []
    c12_values: List[float] = []
    needed = ntypes * ntypes
    for index in range(atnr_line + 1, len(scanner)):
        match = _LJ_RE.search(scanner.lines[index])
        if match is None:
            continue
        c6_values.append(float(match.group(1)))
        c12_values.append(float(match.group(2)))
        if len(c6_values) == needed:
            break
    if len(c6_values) != needed:
        raise InputParseError(
            "dump_section_missing",
            f"Found {len(c6_values)} LJ_SR entries after line {atnr_line + 1}, expected {needed}",
            {"section": "functype LJ_SR", "line": atnr_line + 1},
        )
    return ntypes, c6_values, c12_values


def _parse_blocks(scanner: LineScanner) -> List[Tuple[int, str, int]]:
    count_line, count_match = scanner.find_first(_MOLBLOCK_COUNT_RE, "#molblock")
    nblocks = int(count_match.group(1))
    headers = scanner.find_all(_MOLBLOCK_RE, start=count_line + 1)
    if len(headers) < nblocks:
        raise InputParseError(
            "dump_section_missing",
            f"Expected {nblocks} molblock sections after line {count_line + 1}, found {len(headers)}",
            {"section": "molblock", "line": count_line + 1},
        )
    headers = headers[:nblocks]
    boundaries = [line for line, _ in headers[1:]]
    ff = scanner.find_optional(_FFPARAMS_RE, start=count_line + 1)
    first_moltype = scanner.find_optional(_MOLTYPE_RE, start=count_line + 1)
    blocks: List[Tuple[int, str, int]] = []
    for k, (line, _) in enumerate(headers):
        candidates = [b for b in boundaries if b > line]
        for found in (ff, first_moltype):
            if found is not None and found[0] > line:
                candidates.append(found[0])
        stop = min(candidates) if candidates else len(scanner)
        section = f"molblock ({k})"
        _, moltype_match = scanner.find_first(
            _BLOCK_MOLTYPE_RE, section, start=line + 1, stop=stop
        )
        _, molecules_match = scanner.find_first(
            _BLOCK_COUNT_RE, section, start=line + 1, stop=stop
        )
        blocks.append(
            (
                int(moltype_match.group(1)),
                moltype_match.group(2),
                int(molecules_match.group(1)),
            )
        )
    return blocks


def _parse_angles(
    scanner: LineScanner, start: int, stop: int
) -> List[Tuple[int, int, int]]:
    header = scanner.find_optional(_ANGLE_HEADER_RE, start=start, stop=stop)
    if header is None:
        return []
    nr_line, nr_match = scanner.find_first(
        _NR_RE, "Angle nr", start=header[0] + 1, stop=min(stop, header[0] + 3)
    )
    expected = int(nr_match.group(1)) // 4
    angles: List[Tuple[int, int, int]] = []
    index = nr_line + 1
    if index < stop and _IATOMS_RE.search(scanner.lines[index]):
        index += 1
    while len(angles) < expected and index < stop:
        match = _ANGLE_RE.search(scanner.lines[index])
        if match is None:
            break
        angles.append((int(match.group(1)), int(match.group(2)), int(match.group(3))))
        index += 1
    return angles


def _parse_moltype(
    scanner: LineScanner,
    start: int,
    stop: int,
    moltype_index: int,
    sigma,
    epsilon,
    radius,
) -> MoleculeType:
    section = f"moltype ({moltype_index})"
    _, name_match = scanner.find_first(_NAME_RE, f"{section} name", start=start + 1, stop=stop)
    name = name_match.group(1)
    ntypes = len(radius)

    params_line, params_match = scanner.find_first(
        _ATOM_HEADER_RE, f"{section} atoms", start=start + 1, stop=stop
    )
    natoms = int(params_match.group(1))
    raw_atoms: List[Tuple[int, float, int, Optional[int]]] = []
    for offset in range(natoms):
        index = params_line + 1 + offset
        scanner.match(_ATOM_PARAM_RE, index, f"{section} atoms")
        line = scanner.lines[index]
        type_match = scanner.match(_ATOM_TYPE_RE, index, f"{section} atom type")
        charge_match = scanner.match(_ATOM_CHARGE_RE, index, f"{section} atom charge")
        resind_match = scanner.match(_ATOM_RESIND_RE, index, f"{section} atom resind")
        number_match = _ATOM_NUMBER_RE.search(line)
        type_index = int(type_match.group(1))
        if type_index >= ntypes:
            raise InputParseError(
                "dump_type_out_of_range",
                f"Atom type {type_index} at line {index + 1} exceeds atnr={ntypes}",
                {"section": section, "line": index + 1},
            )
        raw_atoms.append(
            (
                type_index,
                float(charge_match.group(1)),
                int(resind_match.group(1)),
                int(number_match.group(1)) if number_match else None,
            )
        )

    names_line, names_match = scanner.find_first(
        _ATOM_HEADER_RE,
        f"{section} atom names",
        start=params_line + 1 + natoms,
        stop=stop,
    )
    if int(names_match.group(1)) != natoms:
        raise InputParseError(
            "dump_atom_count_mismatch",
            f"{section} declares {natoms} atoms but names block at line "
            f"{names_line + 1} has {names_match.group(1)}",
            {"section": section, "line": names_line + 1},
        )
    names = [
        scanner.match(_ATOM_NAME_RE, names_line + 1 + offset, f"{section} atom names").group(2)
        for offset in range(natoms)
    ]

    residues_line, residues_match = scanner.find_first(
        _RESIDUE_HEADER_RE,
        f"{section} residues",
        start=names_line + 1 + natoms,
        stop=stop,
    )
    nresidues = int(residues_match.group(1))
    residues: List[ResidueRecord] = []
    for offset in range(nresidues):
        match = scanner.match(
            _RESIDUE_RE, residues_line + 1 + offset, f"{section} residues"
        )
        residues.append(ResidueRecord(index=offset, nr=int(match.group(3)), name=match.group(2)))

    previous = 0
    for local, (_, _, resind, _) in enumerate(raw_atoms):
        if resind >= nresidues or resind < previous:
            raise InputParseError(
                "dump_residue_index",
                f"Atom {local} of {section} has residue index {resind} "
                f"(residues: {nresidues}, previous: {previous})",
                {"section": section, "line": params_line + 2 + local},
            )
        previous = resind

    elements = [
        element_from_number(number) or guess_element(atom_name)
        for (_, _, _, number), atom_name in zip(raw_atoms, names)
    ]
    resolved: Dict[int, Tuple[str, Optional[str]]] = {}
    for a, b, c in _parse_angles(scanner, residues_line + 1 + nresidues, stop):
        if max(a, b, c) >= natoms:
            raise InputParseError(
                "dump_angle_out_of_range",
                f"Angle ({a}, {b}, {c}) in {section} references a missing atom",
                {"section": f"{section} angles", "line": residues_line + 1},
            )
        for hydrogen in (a, c):
            if names[hydrogen][:1] in ("H", "h"):
                resolved[hydrogen] = ("H" + names[b], elements[b])

    atoms: List[AtomRecord] = []
    for local, (type_index, charge, resind, _) in enumerate(raw_atoms):
        resolved_name, bonded_element = resolved.get(local, (None, None))
        atoms.append(
            AtomRecord(
                local_index=local,
                name=names[local],
                charge=charge,
                type_index=type_index,
                radius=float(radius[type_index]),
                sigma=float(sigma[type_index]),
                epsilon=float(epsilon[type_index]),
                residue_index=resind,
                element=elements[local],
                resolved_name=resolved_name,
                bonded_element=bonded_element,
                molecule=name,
            )
        )
    logger.debug(
        "Parsed %s %s: %d atoms, %d residues, %d resolved hydrogens",
        section,
        name,
        natoms,
        nresidues,
        len(resolved),
    )
    return MoleculeType(index=moltype_index, name=name, atoms=atoms, residues=residues)


def parse_topology_dump(text: str, default_radius: float = 1.2) -> Topology:
    """Parse the text of ``gmx dump -s`` into a topology.

    Parameters
    ----------
    text
        Dump text.
    default_radius
        Radius (A) for types whose LJ self term is zero.

    Returns
    -------
    Topology
        Nonbonded table, per-type LJ values, molecule types and blocks.

    Raises
    ------
    InputParseError
        If a mandatory section is missing or malformed.
    """

    scanner = LineScanner(text.splitlines())
    ntypes, c6_values, c12_values = _parse_type_table(scanner)
    table = build_type_table(c6_values, c12_values, ntypes)
    sigma, epsilon, radius = derive_lj_by_type(table, default_radius)

    raw_blocks = _parse_blocks(scanner)

    headers = scanner.find_all(_MOLTYPE_RE)
    if not headers:
        raise InputParseError(
            "dump_section_missing",
            "Missing moltype sections",
            {"section": "moltype", "line": 1},
        )
    moltypes_by_index: Dict[int, MoleculeType] = {}
    for position, (line, match) in enumerate(headers):
        stop = headers[position + 1][0] if position + 1 < len(headers) else len(scanner)
        moltype_index = int(match.group(1))
        moltypes_by_index[moltype_index] = _parse_moltype(
            scanner, line, stop, moltype_index, sigma, epsilon, radius
        )
    if sorted(moltypes_by_index) != list(range(len(moltypes_by_index))):
        raise InputParseError(
            "dump_moltype_index",
            "Molecule type indices are not contiguous",
            {"section": "moltype", "indices": sorted(moltypes_by_index)},
        )
    moltypes = [moltypes_by_index[index] for index in range(len(moltypes_by_index))]

    blocks: List[MoleculeBlock] = []
    for k, (moltype_index, block_name, count) in enumerate(raw_blocks):
        if moltype_index not in moltypes_by_index:
            raise InputParseError(
                "dump_moltype_index",
                f"molblock ({k}) references missing moltype {moltype_index}",
                {"section": f"molblock ({k})"},
            )
        blocks.append(MoleculeBlock(moltype=moltype_index, name=block_name, count=count))

    logger.info(
        "Parsed topology dump: %d types, %d molecule types, %d blocks",
        ntypes,
        len(moltypes),
        len(blocks),
    )
    return Topology(
        table=table,
        sigma=sigma,
        epsilon=epsilon,
        radius=radius,
        moltypes=moltypes,
        blocks=blocks,
    )
