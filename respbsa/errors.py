"""Error types raised by the MM-PBSA pipeline."""

from __future__ import annotations

from typing import Dict, Optional


class RespbsaError(Exception):
    """Base exception type for respbsa.

    Attributes
    ----------
    code
        Stable error identifier.
    message
        Human-readable error message.
    details
        Optional detail payload for debugging.
    """

    def __init__(self, code: str, message: str, details: Optional[object] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, object]:
        """Return a loggable error payload.

        Returns
        -------
        dict
            Error code, message and details.
        """
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        if self.details is None:
            return f"[{self.code}] {self.message}"
        return f"[{self.code}] {self.message}: {self.details}"


class InputParseError(RespbsaError):
    """Malformed or missing topology, index or parameter data."""


class GeometryError(RespbsaError):
    """Degenerate atom sets or coordinates (empty groups, zero distances)."""


class ExternalProgramError(RespbsaError):
    """An external program could not be started or failed."""


class SolverInvocationError(ExternalProgramError):
    """The Poisson-Boltzmann solver failed or produced unparsable output.

    The ``details`` payload names the frame and, where known, the sub-system.
    """


class CacheInconsistencyError(RespbsaError):
    """Stored hashes do not match the current parameter inputs.

    Raised while validating a cached parameter file; callers regenerate
    the file instead of aborting.
    """


class PdbWriterError(RespbsaError):
    """Invalid atom data passed to the PQR/PDB writers."""
