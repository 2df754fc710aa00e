from pathlib import Path

import numpy as np
import pytest

from respbsa.errors import CacheInconsistencyError, GeometryError
from respbsa.model.state import GroupSelection
from respbsa.services import qrv
from respbsa.services.dump import parse_topology_dump, read_dump
from respbsa.services.index import GroupIndex

DATA = Path(__file__).resolve().parent / "data"
DUMP = DATA / "complex_dump.txt"


def _system():
    return parse_topology_dump(read_dump(str(DUMP)), default_radius=1.2).expand()


def _groups():
    index = GroupIndex.from_file(str(DATA / "index.ndx"))
    return index.get("Protein"), index.get("LIG")


def test_param_file_layout(tmp_path: Path) -> None:
    receptor, ligand = _groups()
    target = tmp_path / "complex.qrv"
    qrv.write_param_file(str(target), _system(), receptor, ligand)
    lines = target.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Receptor: Protein"
    assert lines[1] == "Ligand: LIG"
    assert lines[2] == "3"
    records = lines[6:]
    assert len(records) == 6
    first = records[0].split()
    assert first[0] == "1"
    assert first[6] == "1"
    assert first[7] == '"00001:ALA"'
    assert first[-1] == "Rec"
    assert records[-1].split()[-1] == "Lig"
    assert not list(tmp_path.glob("*.tmp"))


def test_read_back_arrays(tmp_path: Path) -> None:
    receptor, ligand = _groups()
    target = tmp_path / "complex.qrv"
    qrv.write_param_file(str(target), _system(), receptor, ligand)
    params = qrv.read_param_file(str(target))
    assert params.receptor_name == "Protein"
    assert params.ligand_name == "LIG"
    assert params.natoms == 6
    assert params.charges == pytest.approx([-0.3, 0.3, 0.5, -0.5, 0.25, -0.25])
    assert params.types.tolist() == [0, 2, 1, 1, 1, 2]
    assert params.atom_indices.tolist() == [0, 1, 2, 3, 4, 5]
    assert params.residue_labels == ["00001:ALA", "00002:GLY", "00003:LIG"]
    assert params.residue_index.tolist() == [0, 0, 1, 1, 2, 2]
    assert params.atom_names == ["N", "HN", "C", "O", "C1", "H1"]
    assert params.receptor_positions.tolist() == [0, 1, 2, 3]
    assert params.ligand_positions.tolist() == [4, 5]
    assert params.table.c6[0, 1] == pytest.approx(1.4e-3)


def test_records_carry_resolved_hydrogen_names(tmp_path: Path) -> None:
    index = GroupIndex.from_file(str(DATA / "index.ndx"))
    target = tmp_path / "water.qrv"
    qrv.write_param_file(str(target), _system(), index.get("Protein"), index.get("Water"))
    params = qrv.read_param_file(str(target))
    assert params.atom_names[1] == "HN"
    assert params.atom_names[4:] == ["OW", "HOW", "HOW", "OW", "HOW", "HOW"]


def test_mbondi_radii_follow_bonded_partner(tmp_path: Path) -> None:
    receptor, ligand = _groups()
    target = tmp_path / "complex.qrv"
    qrv.write_param_file(str(target), _system(), receptor, ligand, radius_policy="mbondi")
    params = qrv.read_param_file(str(target))
    # N, H bonded to N, C, O, ligand C, ligand H without partner.
    assert params.radii == pytest.approx([1.55, 1.3, 1.7, 1.5, 1.7, 1.2])


def test_lj_radii_use_type_radius(tmp_path: Path) -> None:
    receptor, ligand = _groups()
    target = tmp_path / "complex.qrv"
    qrv.write_param_file(str(target), _system(), receptor, ligand, radius_policy="lj")
    params = qrv.read_param_file(str(target))
    sigma0 = 10.0 * (4e-6 / 2e-3) ** (1.0 / 6.0)
    assert params.radii[0] == pytest.approx(sigma0 / 2.0, abs=1e-6)
    assert params.radii[1] == pytest.approx(1.2)


def test_residues_compacted_in_first_seen_order(tmp_path: Path) -> None:
    receptor, _ = _groups()
    second_water = GroupSelection(name="SOL2", indices=(9, 10, 11))
    target = tmp_path / "water.qrv"
    qrv.write_param_file(str(target), _system(), receptor, second_water)
    params = qrv.read_param_file(str(target))
    assert params.residue_labels == ["00001:ALA", "00002:GLY", "00005:SOL"]
    assert params.residue_index[params.ligand_positions].tolist() == [2, 2, 2]
    assert params.atom_indices[params.ligand_positions].tolist() == [9, 10, 11]


def test_overlapping_groups_rejected(tmp_path: Path) -> None:
    index = GroupIndex.from_file(str(DATA / "index.ndx"))
    with pytest.raises(GeometryError) as excinfo:
        qrv.write_param_file(
            str(tmp_path / "x.qrv"), _system(), index.get("Protein_LIG"), index.get("LIG")
        )
    assert excinfo.value.code == "overlapping_groups"


def test_empty_group_rejected(tmp_path: Path) -> None:
    receptor, _ = _groups()
    with pytest.raises(GeometryError) as excinfo:
        qrv.write_param_file(
            str(tmp_path / "x.qrv"), _system(), receptor, GroupSelection(name="none", indices=())
        )
    assert excinfo.value.code == "empty_group"


def test_cache_reused_when_hashes_match(tmp_path: Path, monkeypatch) -> None:
    receptor, ligand = _groups()
    target = tmp_path / "complex.qrv"
    first = qrv.ensure_param_file(str(target), str(DUMP), _system(), receptor, ligand)
    for suffix in (".dump.sha", ".qrv.sha", ".selection.sha"):
        assert (tmp_path / f"complex.qrv{suffix}").exists()

    def fail(*args, **kwargs):
        raise AssertionError("parameter file should not be rewritten")

    monkeypatch.setattr(qrv, "write_param_file", fail)
    second = qrv.ensure_param_file(str(target), str(DUMP), _system(), receptor, ligand)
    assert np.array_equal(first.charges, second.charges)


def test_tampered_cache_is_regenerated(tmp_path: Path) -> None:
    receptor, ligand = _groups()
    target = tmp_path / "complex.qrv"
    qrv.ensure_param_file(str(target), str(DUMP), _system(), receptor, ligand)
    original = target.read_text(encoding="utf-8")
    target.write_text(original.replace("Ligand: LIG", "Ligand: XXX"), encoding="utf-8")
    params = qrv.ensure_param_file(str(target), str(DUMP), _system(), receptor, ligand)
    assert params.ligand_name == "LIG"
    assert target.read_text(encoding="utf-8") == original


def test_selection_change_regenerates(tmp_path: Path) -> None:
    receptor, ligand = _groups()
    target = tmp_path / "complex.qrv"
    qrv.ensure_param_file(str(target), str(DUMP), _system(), receptor, ligand)
    water = GroupSelection(name="SOL2", indices=(9, 10, 11))
    params = qrv.ensure_param_file(str(target), str(DUMP), _system(), receptor, water)
    assert params.ligand_name == "SOL2"
    assert params.natoms == 7


def test_check_param_cache_reports_missing_hash(tmp_path: Path) -> None:
    receptor, ligand = _groups()
    target = tmp_path / "complex.qrv"
    qrv.write_param_file(str(target), _system(), receptor, ligand)
    selection = qrv.selection_sha256(receptor, ligand, "mbondi", 1.2)
    with pytest.raises(CacheInconsistencyError) as excinfo:
        qrv.check_param_cache(str(target), str(DUMP), selection)
    assert excinfo.value.code == "hash_missing"
