"""GROMACS invocation helpers."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path

from respbsa.errors import ExternalProgramError

logger = logging.getLogger(__name__)


def dump_topology(tpr_path: str, out_path: str, gmx: str = "gmx") -> Path:
    """Write ``gmx dump -s <tpr>`` output to ``out_path``.

    The dump is written to a temporary file first and renamed into place,
    so an interrupted run never leaves a partial dump behind.

    Parameters
    ----------
    tpr_path
        GROMACS run input file.
    out_path
        Destination of the text dump.
    gmx
        GROMACS executable.

    Returns
    -------
    Path
        Path of the written dump.

    Raises
    ------
    ExternalProgramError
        If ``gmx`` is missing or exits non-zero.
    """

    target = Path(out_path)
    command = [gmx, "dump", "-s", str(tpr_path)]
    logger.info("Dumping topology: %s", " ".join(command))
    try:
        completed = subprocess.run(command, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        raise ExternalProgramError(
            "gmx_not_found", f"GROMACS executable not found: {gmx}", {"tpr": str(tpr_path)}
        ) from exc
    if completed.returncode != 0 or not completed.stdout.strip():
        raise ExternalProgramError(
            "gmx_dump_failed",
            f"gmx dump exited with status {completed.returncode}",
            {"tpr": str(tpr_path), "stderr": completed.stderr[-2000:]},
        )
    handle, temp_path = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
    )
    with os.fdopen(handle, "w", encoding="utf-8") as stream:
        stream.write(completed.stdout)
    os.replace(temp_path, target)
    return target
