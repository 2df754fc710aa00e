"""Receptor-ligand Coulomb and Lennard-Jones energies with residue decomposition."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from respbsa.config import (
    AVOGADRO,
    BOLTZMANN,
    COULOMB_KJ_ANGSTROM,
    ELEMENTARY_CHARGE,
    NM_TO_ANGSTROM,
    VACUUM_PERMITTIVITY,
    IonSpec,
)
from respbsa.errors import GeometryError
from respbsa.model.state import NonbondedTypeTable

logger = logging.getLogger(__name__)

# Upper bound on receptor x ligand pairs evaluated per numpy chunk.
PAIR_CHUNK = 2_000_000


@dataclass(frozen=True, eq=False)
class MMTerms:
    """Molecular mechanics interaction energies of one frame (kJ/mol).

    ``residue_coulomb`` and ``residue_vdw`` hold half of every pair
    involving the residue, so each vector sums to its total.
    """

    coulomb: float
    vdw: float
    residue_coulomb: np.ndarray
    residue_vdw: np.ndarray

    @property
    def total(self) -> float:
        return self.coulomb + self.vdw


def debye_kappa(temperature: float, sdie: float, ions: Sequence[IonSpec]) -> float:
    """Inverse Debye length (1/nm) of the ionic solution.

    Parameters
    ----------
    temperature
        Temperature (K).
    sdie
        Solvent dielectric constant.
    ions
        Mobile ion species; concentrations in mol/L.

    Returns
    -------
    float
        Screening constant kappa, 0 when there are no ions.
    """

    strength = sum(ion.concentration * ion.charge * ion.charge for ion in ions)
    if strength <= 0.0:
        return 0.0
    return 1e-9 / math.sqrt(
        VACUUM_PERMITTIVITY
        * BOLTZMANN
        * temperature
        * sdie
        / (strength * ELEMENTARY_CHARGE * ELEMENTARY_CHARGE * AVOGADRO * 1e3)
    )


def compute_frame(
    coords: np.ndarray,
    charges: np.ndarray,
    vdw_types: np.ndarray,
    type_table: NonbondedTypeTable,
    receptor_indices: Sequence[int],
    ligand_indices: Sequence[int],
    residue_index: np.ndarray,
    n_residues: int,
    dielectric: float,
    use_debye_huckel: bool,
    debye_kappa: float,
    cutoff: float = float("inf"),
) -> MMTerms:
    """Compute receptor-ligand interaction energies for one frame.

    Every receptor atom is paired with every ligand atom. A pair's energy is
    added to the residues of both atoms and every residue is then halved,
    so the totals equal the sum over distinct pairs.

    Parameters
    ----------
    coords
        Coordinates (nm), shape (natoms, 3).
    charges
        Partial charges (e).
    vdw_types
        Van der Waals type of each atom.
    type_table
        C6/C12 table (kJ/mol nm^6, kJ/mol nm^12).
    receptor_indices, ligand_indices
        Atom positions of the two partners.
    residue_index
        Residue (0..n_residues-1) of each atom.
    n_residues
        Number of residues.
    dielectric
        Solute dielectric constant.
    use_debye_huckel
        Multiply each Coulomb pair by exp(-kappa r).
    debye_kappa
        Screening constant (1/nm).
    cutoff
        Pairs at r >= cutoff (nm) are skipped.

    Returns
    -------
    MMTerms
        Totals and per-residue vectors.

    Raises
    ------
    GeometryError
        If a receptor and a ligand atom share coordinates.
    """

    coords = np.asarray(coords, dtype=float)
    charges = np.asarray(charges, dtype=float)
    vdw_types = np.asarray(vdw_types, dtype=np.int64)
    residue_index = np.asarray(residue_index, dtype=np.int64)
    receptor = np.asarray(receptor_indices, dtype=np.int64)
    ligand = np.asarray(ligand_indices, dtype=np.int64)

    residue_coulomb = np.zeros(n_residues, dtype=float)
    residue_vdw = np.zeros(n_residues, dtype=float)
    if receptor.size == 0 or ligand.size == 0:
        return MMTerms(0.0, 0.0, residue_coulomb, residue_vdw)

    prefactor = COULOMB_KJ_ANGSTROM / dielectric
    lig_coords = coords[ligand]
    lig_charges = charges[ligand]
    lig_types = vdw_types[ligand]
    lig_residues = residue_index[ligand]
    chunk = max(1, PAIR_CHUNK // ligand.size)

    for start in range(0, receptor.size, chunk):
        rec = receptor[start : start + chunk]
        delta = coords[rec][:, None, :] - lig_coords[None, :, :]
        r = np.sqrt(np.einsum("ijk,ijk->ij", delta, delta))
        if np.any(r == 0.0):
            i, j = np.argwhere(r == 0.0)[0]
            raise GeometryError(
                "zero_distance",
                "Receptor and ligand atoms share coordinates",
                {"receptor_atom": int(rec[i]), "ligand_atom": int(ligand[j])},
            )
        coulomb = prefactor * charges[rec][:, None] * lig_charges[None, :] / (
            r * NM_TO_ANGSTROM
        )
        if use_debye_huckel:
            coulomb = coulomb * np.exp(-debye_kappa * r)
        pair_types = (vdw_types[rec][:, None], lig_types[None, :])
        inv6 = r ** -6
        vdw = type_table.c12[pair_types] * inv6 * inv6 - type_table.c6[pair_types] * inv6
        if math.isfinite(cutoff):
            outside = r >= cutoff
            coulomb = np.where(outside, 0.0, coulomb)
            vdw = np.where(outside, 0.0, vdw)

        rec_residues = residue_index[rec]
        residue_coulomb += np.bincount(
            rec_residues, weights=coulomb.sum(axis=1), minlength=n_residues
        )
        residue_coulomb += np.bincount(
            lig_residues, weights=coulomb.sum(axis=0), minlength=n_residues
        )
        residue_vdw += np.bincount(rec_residues, weights=vdw.sum(axis=1), minlength=n_residues)
        residue_vdw += np.bincount(lig_residues, weights=vdw.sum(axis=0), minlength=n_residues)

    residue_coulomb *= 0.5
    residue_vdw *= 0.5
    return MMTerms(
        coulomb=float(residue_coulomb.sum()),
        vdw=float(residue_vdw.sum()),
        residue_coulomb=residue_coulomb,
        residue_vdw=residue_vdw,
    )
