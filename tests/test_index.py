from pathlib import Path

import pytest

from respbsa.errors import InputParseError
from respbsa.services.index import GroupIndex

DATA = Path(__file__).resolve().parent / "data"


def test_list_groups_in_file_order() -> None:
    index = GroupIndex.from_file(str(DATA / "index.ndx"))
    assert index.list_groups() == [
        (0, "System", 12),
        (1, "Protein", 4),
        (2, "LIG", 2),
        (3, "Protein_LIG", 6),
        (4, "Water", 6),
    ]


def test_get_by_number_or_name() -> None:
    index = GroupIndex.from_file(str(DATA / "index.ndx"))
    assert index.get(2).indices == (4, 5)
    assert index.get("2").name == "LIG"
    assert index.get("protein").indices == (0, 1, 2, 3)
    assert index.contains("Protein", 3)
    assert not index.contains("Protein", 4)
    assert 5 in index.get("LIG")


def test_unknown_group_raises() -> None:
    index = GroupIndex.from_file(str(DATA / "index.ndx"))
    with pytest.raises(InputParseError) as excinfo:
        index.get("Membrane")
    assert excinfo.value.code == "ndx_unknown_group"
    with pytest.raises(InputParseError):
        index.get(9)


def test_indices_before_header_raise() -> None:
    with pytest.raises(InputParseError) as excinfo:
        GroupIndex.from_text("1 2 3\n[ A ]\n4\n")
    assert excinfo.value.code == "ndx_no_header"


def test_non_numeric_index_reports_line() -> None:
    with pytest.raises(InputParseError) as excinfo:
        GroupIndex.from_text("[ A ]\n1 2\n3 x\n")
    assert excinfo.value.code == "ndx_bad_index"
    assert excinfo.value.details["line"] == 3


def test_groups_spanning_lines_and_empty_groups() -> None:
    index = GroupIndex.from_text("[ A ]\n1 2\n3\n[ Empty ]\n[ B ]\n10\n")
    assert index.get("A").indices == (0, 1, 2)
    assert len(index.get("Empty")) == 0
    assert index.get("B").indices == (9,)
