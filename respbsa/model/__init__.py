"""Model package exports.

:class:`respbsa.model.model.Model` is imported from its module directly;
the services import these state types, and the model imports the services.
"""

from respbsa.model.state import (
    AtomRecord,
    FrameGeometry,
    GroupSelection,
    MeshSpec,
    ResidueRecord,
    Topology,
)

__all__ = [
    "AtomRecord",
    "FrameGeometry",
    "GroupSelection",
    "MeshSpec",
    "ResidueRecord",
    "Topology",
]
