"""Dataclasses for topology, selections, frames and grid geometry."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class ResidueRecord:
    """Residue metadata.

    Attributes
    ----------
    index
        Zero-based residue index (contiguous across molecule copies once the
        system is expanded).
    nr
        Residue number assigned by the simulation.
    name
        Residue name.
    """

    index: int
    nr: int
    name: str

    @property
    def label(self) -> str:
        """Label used in parameter files and reports (``00012:ALA``)."""
        return f"{self.index + 1:05d}:{self.name}"


@dataclass(frozen=True)
class AtomRecord:
    """Force-field metadata describing an atom.

    Attributes
    ----------
    local_index
        Index within the molecule type.
    name
        Atom name.
    charge
        Partial charge (e).
    type_index
        Van der Waals type index into the nonbonded table.
    radius
        Radius derived from the LJ self term (A).
    sigma
        LJ sigma (A).
    epsilon
        LJ epsilon (kJ/mol).
    residue_index
        Residue index (local to the molecule type before expansion, global
        after).
    element
        Element symbol, when known.
    resolved_name
        Hydrogens: ``"H"`` plus the name of the bonded heavy atom.
    bonded_element
        Hydrogens: element of the bonded heavy atom, when known.
    molecule
        Molecule type name (set on expansion).
    copy
        Zero-based molecule copy (set on expansion).
    global_index
        Zero-based system atom index (set on expansion).
    """

    local_index: int
    name: str
    charge: float
    type_index: int
    radius: float
    sigma: float
    epsilon: float
    residue_index: int
    element: Optional[str] = None
    resolved_name: Optional[str] = None
    bonded_element: Optional[str] = None
    molecule: str = ""
    copy: int = 0
    global_index: int = -1


@dataclass(frozen=True, eq=False)
class NonbondedTypeTable:
    """Square C6/C12 coefficient matrices indexed by van der Waals type."""

    c6: np.ndarray
    c12: np.ndarray

    @property
    def ntypes(self) -> int:
        return int(self.c6.shape[0])

    def is_symmetric(self) -> bool:
        return bool(
            np.array_equal(self.c6, self.c6.T) and np.array_equal(self.c12, self.c12.T)
        )


@dataclass(frozen=True)
class MoleculeType:
    """Atoms and residues of one molecule type."""

    index: int
    name: str
    atoms: List[AtomRecord]
    residues: List[ResidueRecord]


@dataclass(frozen=True)
class MoleculeBlock:
    """A run of identical molecules in system order."""

    moltype: int
    name: str
    count: int


@dataclass(frozen=True, eq=False)
class SystemTopology:
    """Fully replicated system-order atoms and residues."""

    atoms: List[AtomRecord]
    residues: List[ResidueRecord]
    table: NonbondedTypeTable

    @property
    def natoms(self) -> int:
        return len(self.atoms)


@dataclass(frozen=True, eq=False)
class Topology:
    """Parsed topology dump.

    Attributes
    ----------
    table
        Nonbonded C6/C12 table shared by all molecule types.
    sigma
        Per-type sigma (A).
    epsilon
        Per-type epsilon (kJ/mol).
    radius
        Per-type radius (A).
    moltypes
        Molecule types in dump order.
    blocks
        Molecule blocks in system order.
    """

    table: NonbondedTypeTable
    sigma: np.ndarray
    epsilon: np.ndarray
    radius: np.ndarray
    moltypes: List[MoleculeType]
    blocks: List[MoleculeBlock]

    def expand(self) -> SystemTopology:
        """Replicate molecule types by block counts into system order.

        Returns
        -------
        SystemTopology
            Atoms with global indices and residues renumbered 0..R-1.
        """

        atoms: List[AtomRecord] = []
        residues: List[ResidueRecord] = []
        for block in self.blocks:
            moltype = self.moltypes[block.moltype]
            for copy in range(block.count):
                offset = len(residues)
                for residue in moltype.residues:
                    residues.append(replace(residue, index=offset + residue.index))
                for atom in moltype.atoms:
                    atoms.append(
                        replace(
                            atom,
                            residue_index=offset + atom.residue_index,
                            molecule=moltype.name,
                            copy=copy,
                            global_index=len(atoms),
                        )
                    )
        return SystemTopology(atoms=atoms, residues=residues, table=self.table)


@dataclass(frozen=True)
class GroupSelection:
    """Named, ordered set of zero-based atom indices."""

    name: str
    indices: Tuple[int, ...]
    members: FrozenSet[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "members", frozenset(self.indices))

    def __contains__(self, atom: int) -> bool:
        return atom in self.members

    def __len__(self) -> int:
        return len(self.indices)


@dataclass(frozen=True, eq=False)
class FrameGeometry:
    """Coordinates of one trajectory frame.

    Attributes
    ----------
    index
        Frame index in the trajectory.
    time
        Simulation time (ps).
    coords
        Atomic coordinates (nm), shape (natoms, 3).
    box
        Box vectors (nm), shape (3, 3).
    """

    index: int
    time: float
    coords: np.ndarray
    box: Optional[np.ndarray] = None


@dataclass(frozen=True)
class MeshSpec:
    """Solver grid geometry for one sub-system (lengths in A)."""

    name: str
    center: Tuple[float, float, float]
    coarse: Tuple[float, float, float]
    fine: Tuple[float, float, float]
    dime: Tuple[int, int, int]

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "center": list(self.center),
            "coarse": list(self.coarse),
            "fine": list(self.fine),
            "dime": list(self.dime),
        }
