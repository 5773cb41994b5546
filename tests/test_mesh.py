import numpy as np
import pytest

from parcelflow_collocated.mesh.mesh_data import MeshData2D
from parcelflow_collocated.mesh.mesh_loader import BC_DIRICHLET, BC_INLET, BC_NEUMANN, BC_OUTLET, BC_WALL
from parcelflow_collocated.mesh.structured_uniform import generate

from conftest import CHANNEL, TEST_MESHES


def test_basic_mesh_integrity(mesh_instance, mesh_label):
    mesh = mesh_instance
    assert isinstance(mesh, MeshData2D)

    nx, ny = TEST_MESHES[mesh_label]["nx"], TEST_MESHES[mesh_label]["ny"]
    n_cells = mesh.n_cells
    n_faces = mesh.n_faces
    assert n_cells == nx * ny
    assert n_faces == nx * (ny + 1) + ny * (nx + 1)
    assert len(mesh.boundary_faces) == 2 * (nx + ny)

    # Core shape checks
    assert mesh.cell_centers.shape == (n_cells, 2)
    assert mesh.face_centers.shape == (n_faces, 2)
    assert mesh.vector_S_f.shape == (n_faces, 2)
    assert mesh.cell_faces.shape == (n_cells, 4)

    # Physical quantities
    assert np.all(mesh.cell_volumes > 0), "All cell volumes should be > 0"
    assert np.isclose(mesh.cell_volumes.sum(), 1.0)
    assert np.all(mesh.face_areas > 0), "All face areas should be > 0"

    # Connectivity validity
    assert np.all(mesh.owner_cells >= 0)
    assert np.all(mesh.neighbor_cells[mesh.boundary_faces] == -1)
    assert np.all((mesh.face_interp_factors >= 0) & (mesh.face_interp_factors <= 1))


def test_vector_S_f_orientation(mesh_instance):
    mesh = mesh_instance
    f = mesh.internal_faces
    dot_product = np.einsum("ij,ij->i", mesh.vector_d_CE[f], mesh.vector_S_f[f])
    assert np.all(dot_product > 0.0), "Internal S_f must point from owner to neighbour"

    b = mesh.boundary_faces
    owner_to_face = mesh.face_centers[b] - mesh.cell_centers[mesh.owner_cells[b]]
    dot_product_bf = np.einsum("ij,ij->i", owner_to_face, mesh.vector_S_f[b])
    assert np.all(dot_product_bf > 0.0), "Boundary S_f must point out of the domain"


def test_over_relaxed_decomposition(mesh_instance, subtests):
    mesh = mesh_instance

    with subtests.test("E_plus_T_equals_S"):
        np.testing.assert_allclose(mesh.vector_E_f + mesh.vector_T_f, mesh.vector_S_f, atol=1e-14)

    with subtests.test("E_parallel_to_e"):
        cross = (
            mesh.vector_E_f[:, 0] * mesh.unit_vector_e[:, 1]
            - mesh.vector_E_f[:, 1] * mesh.unit_vector_e[:, 0]
        )
        np.testing.assert_allclose(cross, 0.0, atol=1e-12)

    with subtests.test("unit_normals"):
        np.testing.assert_allclose(np.linalg.norm(mesh.unit_vector_n, axis=1), 1.0, rtol=1e-10)


def test_closed_cell_surfaces(mesh_instance):
    """Sum of outward area vectors of every cell vanishes."""
    mesh = mesh_instance
    net = np.zeros((mesh.n_cells, 2))
    np.add.at(net, mesh.owner_cells, mesh.vector_S_f)
    f = mesh.internal_faces
    np.add.at(net, mesh.neighbor_cells[f], -mesh.vector_S_f[f])
    np.testing.assert_allclose(net, 0.0, atol=1e-14)


def test_d_Cb_matches_geometry(mesh_instance):
    mesh = mesh_instance
    b = mesh.boundary_faces
    expected = np.linalg.norm(mesh.face_centers[b] - mesh.cell_centers[mesh.owner_cells[b]], axis=1)
    np.testing.assert_allclose(mesh.d_Cb[b], expected)
    assert np.all(mesh.d_Cb[mesh.internal_faces] == 0.0)


def test_orthogonal_mesh_has_no_correction_vector():
    mesh = generate(nx=4, ny=3, Lx=2.0, Ly=1.0)
    np.testing.assert_allclose(mesh.vector_T_f, 0.0, atol=1e-12)
    np.testing.assert_allclose(mesh.face_interp_factors[mesh.internal_faces], 0.5)


def test_perturbed_mesh_is_non_orthogonal():
    mesh = generate(nx=6, ny=5, perturbation=0.3, seed=3)
    T_mag = np.linalg.norm(mesh.vector_T_f[mesh.internal_faces], axis=1)
    assert T_mag.max() > 1e-3


def test_boundary_tagging(subtests):
    mesh = generate(nx=4, ny=3, Lx=2.0, Ly=1.0, boundary_conditions=CHANNEL)

    with subtests.test("patch_sizes"):
        assert len(mesh.patch_faces("left")) == 3
        assert len(mesh.patch_faces("right")) == 3
        assert len(mesh.patch_faces("top")) == 4
        assert len(mesh.patch_faces("bottom")) == 4

    with subtests.test("inlet"):
        left = mesh.patch_faces("left")
        assert np.all(mesh.boundary_types[left] == [BC_INLET, BC_NEUMANN])
        np.testing.assert_allclose(mesh.boundary_values[left, 0:2], [[1.0, 0.0]] * 3)

    with subtests.test("outlet"):
        right = mesh.patch_faces("right")
        assert np.all(mesh.boundary_types[right] == [BC_OUTLET, BC_DIRICHLET])

    with subtests.test("walls"):
        top = mesh.patch_faces("top")
        assert np.all(mesh.boundary_types[top] == [BC_WALL, BC_NEUMANN])

    with subtests.test("internal_sentinels"):
        assert np.all(mesh.boundary_types[mesh.internal_faces] == -1)

    with subtests.test("unknown_patch"):
        with pytest.raises(KeyError):
            mesh.patch_faces("nozzle")


def test_boundary_expression_evaluated_at_face_centres():
    bcs = {
        "left": {
            "velocity": {"bc": "inlet", "value": ["4.0*x[1]*(1.0 - x[1])", 0.0]},
            "pressure": {"bc": "zeroGradient"},
        }
    }
    mesh = generate(nx=2, ny=4, boundary_conditions=bcs)
    left = mesh.patch_faces("left")
    y = mesh.face_centers[left, 1]
    np.testing.assert_allclose(mesh.boundary_values[left, 0], 4.0 * y * (1.0 - y))


def test_invalid_expression_raises():
    bcs = {"left": {"velocity": {"bc": "inlet", "value": ["undefined_name", 0.0]}}}
    with pytest.raises(ValueError, match="left"):
        generate(nx=2, ny=2, boundary_conditions=bcs)
