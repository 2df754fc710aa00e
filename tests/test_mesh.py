import numpy as np
import pytest

from respbsa.config import MeshSettings
from respbsa.errors import GeometryError
from respbsa.services.mesh import bounding_box, plan_frame_meshes, plan_mesh


def _random_system(seed: int = 7):
    rng = np.random.default_rng(seed)
    coords = rng.uniform(0.0, 4.0, size=(40, 3))
    radii = rng.uniform(1.0, 2.0, size=40)
    return coords, radii, np.arange(30), np.arange(30, 40)


def test_bounding_box_includes_radii() -> None:
    coords = np.array([[0.0, 0.0, 0.0], [1.0, 2.0, 3.0], [9.0, 9.0, 9.0]])
    radii = np.array([0.5, 0.25, 0.0])
    lower, upper = bounding_box(coords, radii, [0, 1])
    assert lower.tolist() == [-0.5, -0.5, -0.5]
    assert upper.tolist() == [1.25, 2.25, 3.25]


def test_bounding_box_rejects_empty_selection() -> None:
    with pytest.raises(GeometryError) as excinfo:
        bounding_box(np.zeros((2, 3)), np.zeros(2), [])
    assert excinfo.value.code == "empty_selection"


def test_scaled_mesh_for_point_atom() -> None:
    mesh = plan_mesh("lig", np.zeros(3), np.zeros(3), MeshSettings(policy="scaled"))
    assert mesh.center == (0.0, 0.0, 0.0)
    assert mesh.coarse == pytest.approx((0.3, 0.3, 0.3))
    assert mesh.fine == pytest.approx((0.3, 0.3, 0.3))
    assert mesh.dime == (33, 33, 33)


def test_padded_mesh_for_point_atom() -> None:
    mesh = plan_mesh("lig", np.zeros(3), np.zeros(3), MeshSettings(policy="padded"))
    assert mesh.fine == pytest.approx((20.1, 20.1, 20.1))
    assert mesh.coarse == pytest.approx((34.17, 34.17, 34.17))
    assert mesh.dime == (97, 97, 97)


def test_plan_mesh_converts_nm_to_angstrom() -> None:
    mesh = plan_mesh("com", np.array([0.0, 1.0, 2.0]), np.array([2.0, 3.0, 6.0]), MeshSettings())
    assert mesh.center == pytest.approx((10.0, 20.0, 40.0))
    assert mesh.coarse == pytest.approx((60.0, 60.0, 120.0))
    assert mesh.fine == pytest.approx((30.0, 30.0, 50.0))
    assert mesh.dime == (61, 61, 101)


@pytest.mark.parametrize("policy", ["scaled", "padded"])
def test_mesh_invariants(policy: str) -> None:
    coords, radii, receptor, ligand = _random_system()
    settings = MeshSettings(policy=policy)
    meshes = plan_frame_meshes(coords, radii, receptor, ligand, settings)
    assert set(meshes) == {"com", "rec", "lig"}
    stride = 2 ** (settings.levels + 1)
    for name, mesh in meshes.items():
        assert mesh.name == name
        for axis in range(3):
            assert mesh.fine[axis] <= mesh.coarse[axis]
            assert mesh.dime[axis] >= stride + 1
            assert mesh.dime[axis] % 2 == 1
    complex_box = bounding_box(coords, radii / 10.0, np.arange(40))
    for axis in range(3):
        extent = (complex_box[1][axis] - complex_box[0][axis]) * 10.0
        assert meshes["com"].fine[axis] >= extent


def test_complex_box_mode_shares_geometry() -> None:
    coords, radii, receptor, ligand = _random_system()
    meshes = plan_frame_meshes(coords, radii, receptor, ligand, MeshSettings(box="complex"))
    assert meshes["rec"].to_dict()["dime"] == meshes["com"].to_dict()["dime"]
    assert meshes["lig"].center == meshes["com"].center
    subsystem = plan_frame_meshes(coords, radii, receptor, ligand, MeshSettings())
    assert subsystem["lig"].fine != subsystem["com"].fine


def test_planning_is_deterministic() -> None:
    coords, radii, receptor, ligand = _random_system()
    first = plan_frame_meshes(coords, radii, receptor, ligand, MeshSettings())
    second = plan_frame_meshes(coords.copy(), radii.copy(), receptor, ligand, MeshSettings())
    assert first == second


def test_unknown_policy_raises() -> None:
    with pytest.raises(ValueError):
        plan_mesh("com", np.zeros(3), np.ones(3), MeshSettings(policy="tight"))
