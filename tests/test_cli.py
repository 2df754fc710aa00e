from pathlib import Path

import numpy as np
import pytest

from respbsa import app, config

DATA = Path(__file__).resolve().parent / "data"


def _full_args(*extra: str):
    return app._parse_args(
        [
            "respbsa",
            "topol.tpr",
            "-f",
            "traj.xtc",
            "-n",
            str(DATA / "index.ndx"),
            "--receptor",
            "Protein",
            "--ligand",
            "LIG",
            *extra,
        ]
    )


def test_parse_args_defaults() -> None:
    args = _full_args()
    assert args.tpr_path == "topol.tpr"
    assert args.trj_path == "traj.xtc"
    assert args.name == config.DEFAULT_SYSTEM_NAME
    assert args.radius_policy == "mbondi"
    assert args.mesh_policy == "scaled"
    assert args.jobs == 1
    assert args.cutoff is None
    assert args.bt is None


def test_parse_args_requires_selection() -> None:
    with pytest.raises(SystemExit):
        app._parse_args(["respbsa", "topol.tpr", "-f", "traj.xtc"])


def test_list_groups_requires_index() -> None:
    with pytest.raises(SystemExit):
        app._parse_args(["respbsa", "topol.tpr", "--list-groups"])


def test_parse_args_rejects_zero_jobs() -> None:
    with pytest.raises(SystemExit):
        _full_args("--jobs", "0")


@pytest.mark.parametrize(
    "flag, value", [("--df", "0"), ("--df", "-0.5"), ("--cfac", "0"), ("--fadd", "-1")]
)
def test_parse_args_rejects_bad_mesh_values(flag: str, value: str, capsys) -> None:
    with pytest.raises(SystemExit):
        _full_args(flag, value)
    assert flag in capsys.readouterr().err


def test_parse_args_accepts_zero_fadd() -> None:
    assert _full_args("--fadd", "0").fadd == 0.0


def test_build_settings_maps_flags() -> None:
    args = _full_args(
        "--no-pbsa",
        "--no-entropy",
        "--no-debye-huckel",
        "--cutoff",
        "1.2",
        "--pdie",
        "4",
        "--mesh-policy",
        "padded",
        "--mesh-box",
        "complex",
        "--jobs",
        "3",
        "--no-preserve",
    )
    settings = app.build_settings(args)
    assert settings.apbs is None
    assert not settings.use_entropy
    assert not settings.use_debye_huckel
    assert settings.cutoff == 1.2
    assert settings.pb.pdie == 4.0
    assert settings.pb.sdie == 78.54
    assert settings.mesh.policy == "padded"
    assert settings.mesh.box == "complex"
    assert settings.jobs == 3
    assert not settings.preserve


def test_build_settings_defaults_to_unbounded_cutoff() -> None:
    settings = app.build_settings(_full_args())
    assert settings.cutoff == float("inf")
    assert settings.apbs == "apbs"
    assert settings.rt == pytest.approx(8.314462618e-3 * 298.15)


def test_main_lists_groups(capsys) -> None:
    status = app.main(["respbsa", "topol.tpr", "-n", str(DATA / "index.ndx"), "--list-groups"])
    assert status == 0
    out = capsys.readouterr().out
    assert "Protein_LIG" in out
    assert "   1 Protein" in out


def test_main_reports_unknown_group(tmp_path: Path) -> None:
    status = app.main(
        [
            "respbsa",
            "topol.tpr",
            "-f",
            "traj.xtc",
            "-n",
            str(DATA / "index.ndx"),
            "--receptor",
            "Membrane",
            "--ligand",
            "LIG",
            "--dump",
            str(DATA / "complex_dump.txt"),
            "--out-dir",
            str(tmp_path),
        ]
    )
    assert status == 1


def test_main_mm_only_run_writes_reports(tmp_path: Path, monkeypatch) -> None:
    MDAnalysis = pytest.importorskip("MDAnalysis")
    from MDAnalysis.coordinates.memory import MemoryReader

    base = np.array([[float(i), 0.0, 0.0] for i in range(12)]) * 5.0
    coords = np.stack([base, base + 0.5])
    universe = MDAnalysis.Universe.empty(12, trajectory=True)
    universe.load_new(coords, format=MemoryReader, order="fac", dt=10.0)
    monkeypatch.setattr(app, "load_universe", lambda tpr, trj: universe)

    status = app.main(
        [
            "respbsa",
            "topol.tpr",
            "-f",
            "traj.xtc",
            "-n",
            str(DATA / "index.ndx"),
            "--receptor",
            "1",
            "--ligand",
            "LIG",
            "--dump",
            str(DATA / "complex_dump.txt"),
            "--out-dir",
            str(tmp_path),
            "--no-pbsa",
            "--res-cutoff",
            "6",
        ]
    )
    assert status == 0
    assert (tmp_path / "_system.qrv").exists()
    assert (tmp_path / "MMPBSA__system.csv").exists()
    assert (tmp_path / "MMPBSA__system_traj.csv").exists()
    assert (tmp_path / "MMPBSA__system_res_dH.csv").exists()
    assert (tmp_path / "binding_energy__system.pdb").exists()
    residues = (tmp_path / "MMPBSA__system_res.csv").read_text(encoding="utf-8").splitlines()
    # GLY (atoms 3-4) lies within 6 A of the ligand; ALA does not.
    assert [line.split(",")[1] for line in residues[1:]] == ["GLY", "LIG"]
