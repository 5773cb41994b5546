"""SciPy-based linear solvers for the p_rgh equation.

Direct factorisation (spsolve) or Krylov iteration (BiCGSTAB, CG, GMRES)
with optional PyAMG or Jacobi preconditioning.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pyamg
from scipy.sparse import csr_matrix, diags
from scipy.sparse.linalg import LinearOperator, bicgstab, cg, gmres, spsolve

from parcelflow_collocated.core.exceptions import LinearSolverError
from parcelflow_collocated.core.helpers import compute_residual

log = logging.getLogger(__name__)

KRYLOV_METHODS = {"bicgstab": bicgstab, "cg": cg, "gmres": gmres}


@dataclass
class SolverPerformance:
    """Outcome of one linear solve."""

    solver: str
    initial_residual: float
    final_residual: float
    n_iterations: int
    converged: bool

    def __str__(self):
        return (
            f"{self.solver}: Initial residual = {self.initial_residual:.6g}, "
            f"Final residual = {self.final_residual:.6g}, "
            f"No Iterations {self.n_iterations}"
        )


def _residual_norm(A, x, b):
    norm, _ = compute_residual(A.data, A.indices, A.indptr, x, b)
    return norm


def _build_preconditioner(A, name):
    if name == "amg":
        ml = pyamg.smoothed_aggregation_solver(A, max_coarse=10)
        return ml.aspreconditioner()
    if name == "jacobi":
        inv_diag = 1.0 / A.diagonal()
        return LinearOperator(A.shape, matvec=lambda r: inv_diag * r)
    if name in (None, "none"):
        return None
    raise LinearSolverError(f"Unknown preconditioner '{name}'")


def solve(A: csr_matrix, b: np.ndarray, settings, x0=None):
    """Solve A x = b according to a LinearSolverSettings.

    Parameters
    ----------
    A : csr_matrix
        Sparse matrix in CSR format. Not modified.
    b : np.ndarray
        Right-hand side vector.
    settings : LinearSolverSettings
        method, preconditioner, tolerance (absolute), rel_tol, max_iterations.
    x0 : np.ndarray, optional
        Initial guess for iterative methods.

    Returns
    -------
    x : np.ndarray
        Solution vector.
    performance : SolverPerformance
        A non-converged iterative solve is reported, not raised.

    Raises
    ------
    LinearSolverError
        On illegal input or numerical breakdown.
    """
    A = csr_matrix(A)
    b = np.asarray(b, dtype=np.float64)
    if A.shape[0] != A.shape[1] or A.shape[0] != b.shape[0]:
        raise LinearSolverError(
            f"Matrix shape {A.shape} incompatible with right-hand side of length {b.shape[0]}"
        )

    x_init = np.zeros_like(b) if x0 is None else np.array(x0, dtype=np.float64)
    initial_residual = _residual_norm(A, x_init, b)
    method = settings.method.lower()

    if method == "direct":
        try:
            x = spsolve(A.tocsc(), b)
        except RuntimeError as e:
            raise LinearSolverError(f"spsolve failed: {e}") from e
        if not np.all(np.isfinite(x)):
            raise LinearSolverError("spsolve returned non-finite values (singular matrix?)")
        final_residual = _residual_norm(A, x, b)
        performance = SolverPerformance("direct", initial_residual, final_residual, 1, True)
        log.debug("%s", performance)
        return x, performance

    krylov = KRYLOV_METHODS.get(method)
    if krylov is None:
        raise LinearSolverError(f"Unknown linear solver method '{settings.method}'")

    M = _build_preconditioner(A, settings.preconditioner)
    n_iterations = 0

    def count_iterations(_):
        nonlocal n_iterations
        n_iterations += 1

    kwargs = dict(
        x0=x_init,
        rtol=settings.rel_tol,
        atol=settings.tolerance,
        maxiter=settings.max_iterations,
        M=M,
        callback=count_iterations,
    )
    if method == "gmres":
        kwargs["callback_type"] = "pr_norm"

    x, info = krylov(A, b, **kwargs)

    if info < 0:
        raise LinearSolverError(f"{method} failed (info={info})")

    final_residual = _residual_norm(A, x, b)
    # info > 0: did not converge but we can still use the result
    performance = SolverPerformance(
        method, initial_residual, final_residual, n_iterations, info == 0
    )
    log.debug("%s", performance)
    return x, performance
