import numpy as np
from scipy.sparse.linalg import spsolve

from parcelflow_collocated.assembly.divergence import compute_divergence_from_face_fluxes
from parcelflow_collocated.assembly.pressure_correction_eq_assembly import assemble_pressure_equation


def assemble(mesh, phi=None, psi=0.0, p_rgh=None, mass_source=None, dt=0.1, **kwargs):
    n = mesh.n_cells
    return assemble_pressure_equation(
        mesh,
        np.zeros(mesh.n_faces) if phi is None else phi,
        np.full(mesh.n_faces, 0.2),
        np.ones(n),
        np.ones(n),
        np.full(n, psi),
        np.full(n, psi),
        np.zeros(n) if p_rgh is None else p_rgh,
        np.zeros(n),
        np.zeros(n),
        np.zeros(n) if mass_source is None else mass_source,
        dt,
        **kwargs,
    )


def test_closed_incompressible_system_is_pinned(mesh_instance, subtests):
    mesh = mesh_instance
    p_rgh = np.full(mesh.n_cells, 3.0)
    eq = assemble(mesh, p_rgh=p_rgh, ref_cell=2)
    A = eq.A.toarray()
    row_sums = A.sum(axis=1)

    with subtests.test("symmetric"):
        np.testing.assert_allclose(A, A.T, atol=1e-14)

    with subtests.test("zero_row_sums_away_from_reference"):
        np.testing.assert_allclose(np.delete(row_sums, 2), 0.0, atol=1e-12)

    with subtests.test("reference_diagonal_doubled"):
        assert eq.needs_reference
        assert eq.ref_cell == 2
        np.testing.assert_allclose(row_sums[2], 0.5 * A[2, 2])

    with subtests.test("reference_defaults_to_current_value"):
        assert eq.ref_value == 3.0
        np.testing.assert_allclose(eq.source[2], 0.5 * A[2, 2] * 3.0)
        np.testing.assert_allclose(spsolve(eq.A.tocsc(), eq.rhs), 3.0)


def test_compressible_system_is_not_pinned(mesh_instance):
    mesh = mesh_instance
    psi, dt = 1e-3, 0.1
    eq = assemble(mesh, psi=psi, dt=dt)
    assert not eq.needs_reference
    row_sums = np.asarray(eq.A.sum(axis=1)).ravel()
    np.testing.assert_allclose(row_sums, mesh.cell_volumes * psi / dt, rtol=1e-10, atol=1e-14)


def test_fixed_value_boundary(channel_mesh):
    mesh = channel_mesh
    eq = assemble(mesh)
    assert not eq.needs_reference

    right = mesh.patch_faces("right")
    assert np.all(eq.fixed_boundary[right])
    assert not np.any(eq.fixed_boundary[mesh.patch_faces("left")])

    expected = np.zeros(mesh.n_cells)
    np.add.at(expected, mesh.owner_cells[right], eq.D_f[right])
    row_sums = np.asarray(eq.A.sum(axis=1)).ravel()
    np.testing.assert_allclose(row_sums, expected, atol=1e-12)


def test_nonorthogonal_refresh_reuses_matrix(mesh_instance, rng):
    mesh = mesh_instance
    eq = assemble(mesh)
    A_before = eq.A.copy()
    data_id = id(eq.A)

    rhs = eq.update_nonorthogonal(rng.normal(size=mesh.n_cells))

    assert id(eq.A) == data_id
    np.testing.assert_array_equal(eq.A.data, A_before.data)
    np.testing.assert_array_equal(eq.A.indices, A_before.indices)
    np.testing.assert_allclose(
        rhs, eq.source + compute_divergence_from_face_fluxes(mesh, eq.nonorth_flux)
    )


def test_solved_flux_balances_sources(channel_mesh, rng):
    mesh = channel_mesh
    phi = np.zeros(mesh.n_faces)
    phi[mesh.internal_faces] = rng.normal(scale=0.1, size=len(mesh.internal_faces))
    mass_source = np.zeros(mesh.n_cells)
    mass_source[mesh.n_cells // 2] = 3.0

    eq = assemble(mesh, phi=phi, mass_source=mass_source)
    p_rgh = spsolve(eq.A.tocsc(), eq.rhs)
    phi_final = phi + eq.flux(p_rgh)

    div = compute_divergence_from_face_fluxes(mesh, phi_final)
    np.testing.assert_allclose(div, mesh.cell_volumes * mass_source, atol=1e-10)
    # zero-gradient and wall faces carry no pressure flux
    np.testing.assert_array_equal(phi_final[mesh.patch_faces("left")], 0.0)


def test_compatibility_error_of_pinned_system(mesh_instance, subtests):
    mesh = mesh_instance
    S = np.zeros(mesh.n_cells)
    S[3] = 2.0

    with subtests.test("net_source_in_closed_box"):
        eq = assemble(mesh, mass_source=S)
        assert eq.needs_reference
        np.testing.assert_allclose(eq.compatibility_error, 2.0 * mesh.cell_volumes[3])

    with subtests.test("balanced_sources"):
        S_balanced = S.copy()
        S_balanced[0] = -2.0 * mesh.cell_volumes[3] / mesh.cell_volumes[0]
        eq = assemble(mesh, mass_source=S_balanced)
        np.testing.assert_allclose(eq.compatibility_error, 0.0, atol=1e-14)

    with subtests.test("compressible_system_not_checked"):
        eq = assemble(mesh, psi=1e-3, mass_source=S)
        assert not eq.needs_reference
        assert eq.compatibility_error == 0.0
