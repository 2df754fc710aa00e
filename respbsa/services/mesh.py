"""Solver grid geometry from atomic extents."""

from __future__ import annotations

import math
from typing import Dict, Sequence, Tuple

import numpy as np

from respbsa.config import MIN_MESH_EXTENT, NM_TO_ANGSTROM, MeshSettings
from respbsa.errors import GeometryError
from respbsa.model.state import MeshSpec


def bounding_box(
    coords: np.ndarray, radii: np.ndarray, indices: Sequence[int]
) -> Tuple[np.ndarray, np.ndarray]:
    """Per-axis union of ``[x - r, x + r]`` over selected atoms.

    Parameters
    ----------
    coords
        Coordinates, shape (natoms, 3).
    radii
        Radii in the same length unit as ``coords``.
    indices
        Atoms to include.

    Returns
    -------
    tuple
        ``(lower, upper)`` arrays of shape (3,).

    Raises
    ------
    GeometryError
        If ``indices`` is empty.
    """

    index_array = np.asarray(indices, dtype=np.int64)
    if index_array.size == 0:
        raise GeometryError("empty_selection", "Cannot size a grid for zero atoms")
    selected = np.asarray(coords, dtype=float)[index_array]
    pad = np.asarray(radii, dtype=float)[index_array][:, None]
    return (selected - pad).min(axis=0), (selected + pad).max(axis=0)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _points_padded(fine: float, settings: MeshSettings, stride: int) -> int:
    blocks = _round_half_up(fine / (stride * settings.df))
    return stride * (blocks + 1 + settings.padded_extra) + 1


def _points_scaled(fine: float, settings: MeshSettings, stride: int) -> int:
    points = max(int(math.floor(fine / settings.df)), stride + 1)
    if points % 2 == 0:
        points += 1
    return points


def plan_mesh(
    name: str, lower: np.ndarray, upper: np.ndarray, settings: MeshSettings
) -> MeshSpec:
    """Derive grid center, lengths and point counts for one sub-system.

    Parameters
    ----------
    name
        Sub-system name (``com``, ``rec`` or ``lig``).
    lower, upper
        Bounding box corners in nm.
    settings
        Grid sizing parameters.

    Returns
    -------
    MeshSpec
        Geometry in A.

    Raises
    ------
    ValueError
        If the sizing policy is unknown.
    """

    stride = 2 ** (settings.levels + 1)
    lower_a = np.asarray(lower, dtype=float) * NM_TO_ANGSTROM
    upper_a = np.asarray(upper, dtype=float) * NM_TO_ANGSTROM
    center = []
    coarse = []
    fine = []
    dime = []
    for axis in range(3):
        center.append(float((lower_a[axis] + upper_a[axis]) / 2.0))
        extent = max(float(upper_a[axis] - lower_a[axis]), MIN_MESH_EXTENT)
        if settings.policy == "padded":
            fine_len = extent + 2.0 * settings.fadd
            coarse_len = fine_len * settings.padded_cfac
            points = _points_padded(fine_len, settings, stride)
        elif settings.policy == "scaled":
            coarse_len = extent * settings.cfac
            fine_len = min(coarse_len, extent + settings.fadd)
            points = _points_scaled(fine_len, settings, stride)
        else:
            raise ValueError(f"Unknown mesh policy: {settings.policy}")
        coarse.append(float(coarse_len))
        fine.append(float(fine_len))
        dime.append(points)
    return MeshSpec(
        name=name,
        center=tuple(center),
        coarse=tuple(coarse),
        fine=tuple(fine),
        dime=tuple(dime),
    )


def plan_frame_meshes(
    coords: np.ndarray,
    radii: np.ndarray,
    receptor_indices: Sequence[int],
    ligand_indices: Sequence[int],
    settings: MeshSettings,
) -> Dict[str, MeshSpec]:
    """Plan complex, receptor and ligand grids for one frame.

    Parameters
    ----------
    coords
        Coordinates (nm) indexed like the index arrays.
    radii
        Radii (A) indexed like ``coords``.
    receptor_indices, ligand_indices
        Atom positions of each sub-system.
    settings
        Grid sizing parameters; ``settings.box == "complex"`` sizes all
        three grids from the complex.

    Returns
    -------
    dict
        MeshSpec keyed by ``com``, ``rec`` and ``lig``.
    """

    radii_nm = np.asarray(radii, dtype=float) / NM_TO_ANGSTROM
    receptor = np.asarray(receptor_indices, dtype=np.int64)
    ligand = np.asarray(ligand_indices, dtype=np.int64)
    complex_ = np.concatenate([receptor, ligand])
    com_box = bounding_box(coords, radii_nm, complex_)
    if settings.box == "complex":
        boxes = {"com": com_box, "rec": com_box, "lig": com_box}
    elif settings.box == "subsystem":
        boxes = {
            "com": com_box,
            "rec": bounding_box(coords, radii_nm, receptor),
            "lig": bounding_box(coords, radii_nm, ligand),
        }
    else:
        raise ValueError(f"Unknown mesh box mode: {settings.box}")
    return {name: plan_mesh(name, lower, upper, settings) for name, (lower, upper) in boxes.items()}
