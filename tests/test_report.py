from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from respbsa.config import Settings
from respbsa.model.model import Model
from respbsa.model.state import FrameGeometry
from respbsa.services import report
from respbsa.services.index import GroupIndex

DATA = Path(__file__).resolve().parent / "data"


def _coords(shift: float = 0.0) -> np.ndarray:
    coords = np.array([[0.5 * i, 0.1 * (i % 3), 0.0] for i in range(12)], dtype=float)
    return coords + shift


def _run(tmp_path: Path):
    index = GroupIndex.from_file(str(DATA / "index.ndx"))
    model = Model(Settings(apbs=None))
    params = model.prepare(
        str(DATA / "complex_dump.txt"),
        index.get("Protein"),
        index.get("LIG"),
        str(tmp_path),
        "_system",
    )
    summary = model.run(
        [
            FrameGeometry(index=0, time=0.0, coords=_coords()),
            FrameGeometry(index=1, time=10.0, coords=_coords(0.02)),
        ]
    )
    return model, params, summary


def test_summary_table_rows(tmp_path: Path) -> None:
    _, _, summary = _run(tmp_path)
    table = report.summary_table(summary)
    assert table["term"].tolist() == [
        "dH",
        "dMM",
        "dPB",
        "dSA",
        "dElec",
        "dVdW",
        "TdS",
        "dG",
        "Ki",
    ]
    values = dict(zip(table["term"], table["value"]))
    assert values["dH"] == pytest.approx(summary.averages["dh"])
    assert values["dG"] == pytest.approx(summary.dg)


def test_trajectory_table_indexed_by_ns(tmp_path: Path) -> None:
    _, _, summary = _run(tmp_path)
    table = report.trajectory_table(summary)
    assert table.index.name == "time_ns"
    assert table.index.tolist() == pytest.approx([0.0, 0.01])
    assert list(table.columns) == ["dH", "dMM", "dPB", "dSA", "dElec", "dVdW"]
    assert table["dPB"].tolist() == [0.0, 0.0]


def test_residue_tables(tmp_path: Path) -> None:
    _, params, summary = _run(tmp_path)
    table = report.residue_table(summary, params)
    assert table["id"].tolist() == ["00001", "00002", "00003"]
    assert table["name"].tolist() == ["ALA", "GLY", "LIG"]
    assert table["dH"].sum() == pytest.approx(summary.averages["dh"])

    subset = report.residue_table(summary, params, residues=[2])
    assert subset["name"].tolist() == ["LIG"]

    over_time = report.residue_time_table(summary, params, "mm")
    assert list(over_time.columns) == ["00001:ALA", "00002:GLY", "00003:LIG"]
    assert over_time.shape == (2, 3)


def test_residues_near_ligand(tmp_path: Path) -> None:
    _, params, _ = _run(tmp_path)
    coords = _coords()[params.atom_indices]
    assert report.residues_near_ligand(params, coords, 0.6).tolist() == [1, 2]
    assert report.residues_near_ligand(params, coords, 2.0).tolist() == [0, 1, 2]
    assert report.residues_near_ligand(params, coords, 0.0).tolist() == [2]


def test_bfactor_pdb_holds_negated_kcal(tmp_path: Path) -> None:
    model, params, summary = _run(tmp_path)
    text = report.bfactor_pdb(summary, params, model.last_coords)
    atoms = [line for line in text.splitlines() if line.startswith("ATOM")]
    assert len(atoms) == 6
    expected = -summary.residue_averages["dh"][0] / 4.184
    assert float(atoms[0][60:66]) == pytest.approx(expected, abs=0.006)
    assert atoms[4][17:20] == "LIG"


def test_write_reports_files(tmp_path: Path) -> None:
    model, params, summary = _run(tmp_path)
    out_dir = tmp_path / "reports"
    written = report.write_reports(
        summary, params, str(out_dir), "_system", residues=[1, 2], coords=model.last_coords
    )
    names = sorted(path.name for path in written)
    assert len(names) == 10
    assert "MMPBSA__system.csv" in names
    assert "MMPBSA__system_res_dVdW.csv" in names
    assert "binding_energy__system.pdb" in names
    residues = pd.read_csv(out_dir / "MMPBSA__system_res.csv")
    assert residues["name"].tolist() == ["GLY", "LIG"]
    traj = pd.read_csv(out_dir / "MMPBSA__system_traj.csv")
    assert traj.columns[0] == "time_ns"
    assert len(traj) == 2


def test_write_reports_without_coords_skips_pdb(tmp_path: Path) -> None:
    _, params, summary = _run(tmp_path)
    written = report.write_reports(summary, params, str(tmp_path / "out"), "run")
    assert len(written) == 9
    assert not (tmp_path / "out" / "binding_energy_run.pdb").exists()
