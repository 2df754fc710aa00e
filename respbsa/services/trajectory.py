"""Trajectory frame reading through MDAnalysis."""

from __future__ import annotations

import logging
from typing import Iterator, Optional

import MDAnalysis as mda
import numpy as np

from respbsa.config import NM_TO_ANGSTROM
from respbsa.errors import InputParseError
from respbsa.model.state import FrameGeometry

logger = logging.getLogger(__name__)

_TIME_TOLERANCE = 1e-3  # ps


def load_universe(topology_path: str, trajectory_path: str) -> "mda.Universe":
    """Open a run input file together with its trajectory.

    Raises
    ------
    InputParseError
        If MDAnalysis cannot read either file.
    """

    logger.debug("Loading MDAnalysis Universe from %s and %s", topology_path, trajectory_path)
    try:
        return mda.Universe(topology_path, trajectory_path)
    except (OSError, ValueError, TypeError, EOFError) as exc:
        raise InputParseError(
            "trajectory_load_failed",
            "Failed to load trajectory",
            {"topology": topology_path, "trajectory": trajectory_path, "error": str(exc)},
        ) from exc


def _in_window(time: float, begin: Optional[float], end: Optional[float]) -> bool:
    if begin is not None and time < begin - _TIME_TOLERANCE:
        return False
    if end is not None and time > end + _TIME_TOLERANCE:
        return False
    return True


def _on_stride(time: float, first: float, dt: Optional[float]) -> bool:
    if dt is None or dt <= 0:
        return True
    offset = time - first
    return abs(round(offset / dt) * dt - offset) < _TIME_TOLERANCE


def iter_frames(
    universe: "mda.Universe",
    begin: Optional[float] = None,
    end: Optional[float] = None,
    dt: Optional[float] = None,
) -> Iterator[FrameGeometry]:
    """Yield frames between ``begin`` and ``end`` (ps), every ``dt`` ps.

    The stride starts at the first frame at or after ``begin``.
    Coordinates and box vectors are converted from A to nm.
    """

    first: Optional[float] = None
    for ts in universe.trajectory:
        time = float(ts.time)
        if end is not None and time > end + _TIME_TOLERANCE:
            break
        if not _in_window(time, begin, end):
            continue
        if first is None:
            first = time
        if not _on_stride(time, first, dt):
            continue
        box = None
        if ts.dimensions is not None:
            box = np.asarray(ts.triclinic_dimensions, dtype=float) / NM_TO_ANGSTROM
        yield FrameGeometry(
            index=int(ts.frame),
            time=time,
            coords=np.asarray(ts.positions, dtype=np.float64) / NM_TO_ANGSTROM,
            box=box,
        )


def frame_name(system_name: str, time_ps: float) -> str:
    """File prefix for a frame, e.g. ``_system_1.5ns``."""

    text = f"{time_ps / 1000.0:.6f}".rstrip("0").rstrip(".")
    return f"{system_name}_{text}ns"
