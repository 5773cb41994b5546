import numpy as np
from numba import njit, prange

from parcelflow_collocated.core.helpers import interpolate_to_face, velocity_boundary_values

SMALL = 1.0e-15


@njit(parallel=False)
def _ddt_phi_correction_kernel(
    internal_faces, vector_S_f, rho_f, rhorAU_old_f, rhoU_old_f, phi_old, dt, ddt_phi_coeff
):
    """
    Transient Rhie-Chow correction on internal faces, expressed per unit
    face density so that phiU = rho_f * (U_f·S_f + correction).
    """
    n_faces = phi_old.shape[0]
    correction = np.zeros(n_faces, dtype=np.float64)

    for i in prange(internal_faces.shape[0]):
        f = internal_faces[i]
        phi_U_old = rhoU_old_f[f, 0] * vector_S_f[f, 0] + rhoU_old_f[f, 1] * vector_S_f[f, 1]
        delta = phi_old[f] - phi_U_old

        if ddt_phi_coeff < 0.0:
            coeff = 1.0 - min(abs(delta) / (abs(phi_old[f]) + SMALL), 1.0)
        else:
            coeff = ddt_phi_coeff

        correction[f] = coeff * rhorAU_old_f[f] / dt * delta / rho_f[f]

    return correction


def predict_flux(
    mesh, U, rAU, rho, rho_old, U_old, phi_old, dt, ddt_phi_coeff=-1.0, U_boundary=None
):
    """
    Predicted face mass flux from the provisional momentum velocity.

    phiU = rho_f * ((U_f·S_f) + ddtPhiCorr)

    Parameters
    ----------
    U : (n_cells, 2) provisional velocity rAU*H
    rAU : (n_cells,) reciprocal momentum diagonal
    rho, rho_old : (n_cells,) density at current and old time level
    U_old : (n_cells, 2) old-time velocity
    phi_old : (n_faces,) old-time mass flux
    dt : float time step
    ddt_phi_coeff : float
        Negative selects the automatic coupling coefficient; otherwise a
        fixed coefficient in [0, 1].
    U_boundary : (n_faces, 2), optional
        Boundary face velocity. Derived from the boundary conditions when None.

    Returns
    -------
    phiU : (n_faces,) ndarray
    """
    if U_boundary is None:
        U_boundary = velocity_boundary_values(mesh, U)

    rho_f = interpolate_to_face(mesh, rho)
    U_f = interpolate_to_face(mesh, U)
    bf = mesh.boundary_faces
    U_f[bf] = U_boundary[bf]

    flux_U = np.einsum("ij,ij->i", U_f, mesh.vector_S_f)

    rhoU_old_f = interpolate_to_face(mesh, rho_old[:, None] * U_old)
    rhorAU_old_f = interpolate_to_face(mesh, rho_old * rAU)
    ddt_corr = _ddt_phi_correction_kernel(
        mesh.internal_faces,
        mesh.vector_S_f,
        rho_f,
        rhorAU_old_f,
        rhoU_old_f,
        np.ascontiguousarray(phi_old, dtype=np.float64),
        float(dt),
        float(ddt_phi_coeff),
    )

    return rho_f * (flux_U + ddt_corr)
