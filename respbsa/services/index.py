"""GROMACS index (.ndx) group reader."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Tuple, Union

from respbsa.errors import InputParseError
from respbsa.model.state import GroupSelection

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^\s*\[\s*(.*?)\s*\]\s*$")

GroupKey = Union[int, str]


class GroupIndex:
    """Named atom groups in file order.

    Groups are numbered from 0 in the order they appear, the way ``gmx``
    tools list them.
    """

    def __init__(self, groups: List[GroupSelection]) -> None:
        self.groups = list(groups)

    @classmethod
    def from_file(cls, path: str) -> "GroupIndex":
        text = Path(path).read_text(encoding="utf-8", errors="replace")
        return cls.from_text(text, source=str(path))

    @classmethod
    def from_text(cls, text: str, source: str = "<text>") -> "GroupIndex":
        """Parse index text.

        Parameters
        ----------
        text
            Index file contents.
        source
            Name used in error messages.

        Returns
        -------
        GroupIndex
            Parsed groups with 0-based atom indices.

        Raises
        ------
        InputParseError
            On indices before the first header or non-numeric tokens.
        """

        groups: List[GroupSelection] = []
        name = None
        indices: List[int] = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            stripped = line.split(";", 1)[0].strip()
            if not stripped:
                continue
            header = _HEADER_RE.match(stripped)
            if header:
                if name is not None:
                    groups.append(GroupSelection(name=name, indices=tuple(indices)))
                name = header.group(1)
                indices = []
                continue
            if name is None:
                raise InputParseError(
                    "ndx_no_header",
                    f"{source}:{line_number}: atom indices before any group header",
                    {"line": line_number},
                )
            for token in stripped.split():
                try:
                    value = int(token)
                except ValueError as exc:
                    raise InputParseError(
                        "ndx_bad_index",
                        f"{source}:{line_number}: invalid atom index '{token}'",
                        {"line": line_number, "group": name},
                    ) from exc
                if value < 1:
                    raise InputParseError(
                        "ndx_bad_index",
                        f"{source}:{line_number}: atom index {value} is not 1-based",
                        {"line": line_number, "group": name},
                    )
                indices.append(value - 1)
        if name is not None:
            groups.append(GroupSelection(name=name, indices=tuple(indices)))
        logger.debug("Read %d index groups from %s", len(groups), source)
        return cls(groups)

    def list_groups(self) -> List[Tuple[int, str, int]]:
        return [(number, group.name, len(group)) for number, group in enumerate(self.groups)]

    def get(self, key: GroupKey) -> GroupSelection:
        """Return a group by number or case-insensitive name.

        Numeric strings are treated as group numbers.

        Raises
        ------
        InputParseError
            If no group matches.
        """

        if isinstance(key, str) and key.strip().isdigit():
            key = int(key.strip())
        if isinstance(key, int):
            if 0 <= key < len(self.groups):
                return self.groups[key]
        else:
            wanted = key.strip().lower()
            for group in self.groups:
                if group.name.lower() == wanted:
                    return group
        raise InputParseError(
            "ndx_unknown_group",
            f"Unknown index group: {key}",
            {"groups": [group.name for group in self.groups]},
        )

    def contains(self, key: GroupKey, atom: int) -> bool:
        return atom in self.get(key)
