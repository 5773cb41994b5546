import numpy as np
import pytest
from scipy.sparse import diags

from parcelflow_collocated.core.controls import LinearSolverSettings
from parcelflow_collocated.core.exceptions import ConfigurationError, LinearSolverError
from parcelflow_collocated.linear_solvers.scipy_solver import solve


@pytest.fixture
def poisson_system():
    n = 60
    A = diags([-np.ones(n - 1), 2.0 * np.ones(n) + 0.01, -np.ones(n - 1)], [-1, 0, 1], format="csr")
    x_exact = np.sin(np.linspace(0.0, 3.0, n))
    return A, A @ x_exact, x_exact


def test_direct_solver(poisson_system):
    A, b, x_exact = poisson_system
    x, performance = solve(A, b, LinearSolverSettings(method="direct"))
    np.testing.assert_allclose(x, x_exact, rtol=1e-10)
    assert performance.converged
    assert performance.final_residual < 1e-10
    assert performance.initial_residual == pytest.approx(np.linalg.norm(b))


@pytest.mark.parametrize(
    "method,preconditioner",
    [("bicgstab", "amg"), ("bicgstab", "jacobi"), ("cg", "amg"), ("cg", "none"), ("gmres", "jacobi")],
)
def test_iterative_solvers_agree_with_direct(poisson_system, method, preconditioner):
    A, b, _ = poisson_system
    x_direct, _ = solve(A, b, LinearSolverSettings(method="direct"))
    settings = LinearSolverSettings(
        method=method, preconditioner=preconditioner, tolerance=1e-12, rel_tol=0.0, max_iterations=2000
    )
    x, performance = solve(A, b, settings)
    assert performance.converged
    assert performance.n_iterations > 0
    np.testing.assert_allclose(x, x_direct, rtol=1e-6, atol=1e-8)


def test_initial_guess_at_solution(poisson_system):
    A, b, x_exact = poisson_system
    settings = LinearSolverSettings(method="bicgstab", preconditioner="none", tolerance=1e-8)
    x, performance = solve(A, b, settings, x0=x_exact)
    assert performance.initial_residual < 1e-8
    assert performance.converged
    np.testing.assert_allclose(x, x_exact, atol=1e-8)


def test_non_convergence_is_reported_not_raised(poisson_system):
    A, b, _ = poisson_system
    settings = LinearSolverSettings(
        method="bicgstab", preconditioner="none", tolerance=1e-14, rel_tol=0.0, max_iterations=1
    )
    x, performance = solve(A, b, settings)
    assert not performance.converged
    assert x.shape == b.shape


def test_matrix_is_not_modified(poisson_system):
    A, b, _ = poisson_system
    data_before = A.data.copy()
    solve(A, b, LinearSolverSettings(method="bicgstab", preconditioner="amg"))
    np.testing.assert_array_equal(A.data, data_before)


def test_shape_mismatch_raises(poisson_system):
    A, b, _ = poisson_system
    with pytest.raises(LinearSolverError):
        solve(A, b[:-1], LinearSolverSettings())


def test_singular_matrix_raises():
    A = diags([np.array([1.0, 0.0])], [0], format="csr")
    with pytest.raises(LinearSolverError):
        solve(A, np.array([1.0, 1.0]), LinearSolverSettings(method="direct"))


def test_invalid_settings(subtests):
    with subtests.test("method"):
        with pytest.raises(ConfigurationError):
            LinearSolverSettings(method="pcg_magic")
    with subtests.test("preconditioner"):
        with pytest.raises(ConfigurationError):
            LinearSolverSettings(preconditioner="ilu0")
    with subtests.test("tolerance"):
        with pytest.raises(ConfigurationError):
            LinearSolverSettings(tolerance=-1.0)
