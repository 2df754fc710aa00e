import shutil
from pathlib import Path

import numpy as np
import pytest

from respbsa.config import SASettings, Settings
from respbsa.errors import SolverInvocationError
from respbsa.model.state import MeshSpec
from respbsa.services import apbs
from respbsa.services.dump import parse_topology_dump, read_dump
from respbsa.services.index import GroupIndex
from respbsa.services.qrv import ensure_param_file

DATA = Path(__file__).resolve().parent / "data"
COUNTS = {"com": 6, "rec": 4, "lig": 2}


def _output() -> str:
    return (DATA / "apbs_output.txt").read_text(encoding="utf-8")


def _meshes():
    return {
        name: MeshSpec(
            name=name,
            center=(1.0, 2.0, 3.0),
            coarse=(60.0, 60.0, 60.0),
            fine=(30.0, 30.0, 30.0),
            dime=(65, 65, 65),
        )
        for name in ("com", "rec", "lig")
    }


def _params(tmp_path: Path):
    dump = DATA / "complex_dump.txt"
    system = parse_topology_dump(read_dump(str(dump))).expand()
    index = GroupIndex.from_file(str(DATA / "index.ndx"))
    return ensure_param_file(
        str(tmp_path / "complex.qrv"), str(dump), system, index.get("Protein"), index.get("LIG")
    )


def test_input_deck_lists_all_calculations() -> None:
    deck = apbs.build_input_deck("_system_0ns", _meshes(), Settings())
    for name in ("com", "rec", "lig"):
        assert f"  mol pqr _system_0ns_{name}.pqr" in deck
        assert f"ELEC name _system_0ns_{name}\n" in deck
        assert f"ELEC name _system_0ns_{name}_VAC" in deck
        assert f"APOLAR name _system_0ns_{name}_SAS" in deck
    assert deck.count("  sdie  1.0\n") == 3
    assert deck.count("  sdie  78.54\n") == 3
    assert "  dime   65  65  65" in deck
    assert "  cglen  60.000  60.000  60.000" in deck
    assert "  fgcent 1.000  2.000  3.000" in deck
    assert "  mol 3" in deck
    assert deck.rstrip().endswith("quit")


def test_parse_solver_output_per_atom_values() -> None:
    results = apbs.parse_solver_output(_output(), "_system_0ns", COUNTS, SASettings())
    assert results["com"].polar_atoms.tolist() == [-9.0, -10.0, -11.0, -12.0, -13.0, -14.0]
    assert results["com"].polar == pytest.approx(-69.0)
    assert results["rec"].polar == pytest.approx(-34.0)
    assert results["lig"].polar == pytest.approx(-11.0)
    assert results["com"].apolar_atoms == pytest.approx(
        0.0301248 * np.array([10.0, 20.0, 30.0, 40.0, 50.0, 60.0])
    )
    assert results["lig"].apolar == pytest.approx(0.0301248 * 120.0)


def test_surface_offset_is_spread_over_atoms() -> None:
    settings = SASettings(surface_tension=0.0, surface_offset=4.0)
    results = apbs.parse_solver_output(_output(), "_system_0ns", COUNTS, settings)
    assert results["rec"].apolar_atoms.tolist() == [1.0, 1.0, 1.0, 1.0]
    assert results["lig"].apolar == pytest.approx(4.0)


def test_missing_calculation_names_frame_and_subsystem() -> None:
    text = _output().replace("(_system_0ns_lig_VAC)", "(_system_0ns_other)")
    with pytest.raises(SolverInvocationError) as excinfo:
        apbs.parse_solver_output(text, "_system_0ns", COUNTS, SASettings())
    assert excinfo.value.code == "solver_calculation_missing"
    assert excinfo.value.details == {"frame": "_system_0ns", "subsystem": "lig"}


def test_atom_count_mismatch() -> None:
    counts = dict(COUNTS, rec=5)
    with pytest.raises(SolverInvocationError) as excinfo:
        apbs.parse_solver_output(_output(), "_system_0ns", counts, SASettings())
    assert excinfo.value.code == "solver_atom_count"
    assert excinfo.value.details["subsystem"] == "rec"


def test_zero_solvation_shapes() -> None:
    results = apbs.zero_solvation(COUNTS)
    assert results["com"].polar_atoms.shape == (6,)
    assert results["lig"].apolar == 0.0


def test_write_inputs_creates_pqr_files(tmp_path: Path) -> None:
    params = _params(tmp_path)
    workdir = tmp_path / "work"
    workdir.mkdir()
    coords = np.arange(params.natoms * 3, dtype=float).reshape(params.natoms, 3) / 10.0
    adapter = apbs.SolverAdapter(apbs.ApbsClient(), Settings())
    deck = adapter.write_inputs(workdir, "_system_0ns", coords, params, _meshes())
    assert deck.name == "_system_0ns.apbs"
    ligand_lines = (workdir / "_system_0ns_lig.pqr").read_text(encoding="utf-8").splitlines()
    assert ligand_lines[-1] == "END"
    fields = ligand_lines[0].split()
    assert fields[:5] == ["ATOM", "1", "C1", "LIG", "3"]
    assert float(fields[5]) == pytest.approx(12.0)
    assert float(fields[8]) == pytest.approx(0.25)
    complex_lines = (workdir / "_system_0ns_com.pqr").read_text(encoding="utf-8").splitlines()
    assert len(complex_lines) == 7


def test_missing_executable_raises(tmp_path: Path) -> None:
    client = apbs.ApbsClient("respbsa-no-such-solver")
    with pytest.raises(SolverInvocationError) as excinfo:
        client.run("frame.apbs", str(tmp_path))
    assert excinfo.value.code == "solver_not_found"


@pytest.mark.skipif(shutil.which("false") is None, reason="needs the false utility")
def test_nonzero_exit_raises(tmp_path: Path) -> None:
    client = apbs.ApbsClient(shutil.which("false"))
    with pytest.raises(SolverInvocationError) as excinfo:
        client.run("frame.apbs", str(tmp_path))
    assert excinfo.value.code == "solver_failed"
