import numpy as np
from numba import njit

EPS = 1.0e-14


# ──────────────────────────────────────────────────────────────────────────────
# Implicit (orthogonal) conductance
# ──────────────────────────────────────────────────────────────────────────────
@njit
def _diffusive_coefficients_kernel(
    internal_faces, boundary_faces, vector_E_f, vector_d_CE, d_Cb, gamma_f
):
    n_faces = gamma_f.shape[0]
    D_f = np.zeros(n_faces, dtype=np.float64)

    for i in range(internal_faces.shape[0]):
        f = internal_faces[i]
        E_mag = np.sqrt(vector_E_f[f, 0] ** 2 + vector_E_f[f, 1] ** 2)
        d_mag = np.sqrt(vector_d_CE[f, 0] ** 2 + vector_d_CE[f, 1] ** 2) + EPS
        # ---- over‑relaxed orthogonal conductance (Eq 8.58) ----
        D_f[f] = gamma_f[f] * E_mag / d_mag

    for i in range(boundary_faces.shape[0]):
        f = boundary_faces[i]
        E_mag = np.sqrt(vector_E_f[f, 0] ** 2 + vector_E_f[f, 1] ** 2)
        D_f[f] = gamma_f[f] * E_mag / (d_Cb[f] + EPS)

    return D_f


def compute_diffusive_coefficients(mesh, gamma_f):
    """
    Over‑relaxed implicit conductance per face.

    Internal faces: Γ_f |E_f| / |d_CE|, multiplying (φ_N − φ_P).
    Boundary faces: Γ_f |E_b| / d_Cb, multiplying (φ_b − φ_P); only used where
    the boundary value is fixed.
    """
    return _diffusive_coefficients_kernel(
        mesh.internal_faces,
        mesh.boundary_faces,
        mesh.vector_E_f,
        mesh.vector_d_CE,
        mesh.d_Cb,
        np.ascontiguousarray(gamma_f, dtype=np.float64),
    )


# ──────────────────────────────────────────────────────────────────────────────
# Explicit non-orthogonal correction
# ──────────────────────────────────────────────────────────────────────────────
@njit
def _nonorthogonal_flux_kernel(
    owner_cells, neighbor_cells, internal_faces, boundary_faces,
    face_interp_factors, vector_T_f, gamma_f, grad_phi, fixed_boundary
):
    n_faces = gamma_f.shape[0]
    flux = np.zeros(n_faces, dtype=np.float64)

    for i in range(internal_faces.shape[0]):
        f = internal_faces[i]
        P = owner_cells[f]
        N = neighbor_cells[f]
        g_f = face_interp_factors[f]
        gx = (1.0 - g_f) * grad_phi[P, 0] + g_f * grad_phi[N, 0]
        gy = (1.0 - g_f) * grad_phi[P, 1] + g_f * grad_phi[N, 1]
        flux[f] = gamma_f[f] * (gx * vector_T_f[f, 0] + gy * vector_T_f[f, 1])

    # Only boundaries with a fixed value carry a gradient through T_b
    for i in range(boundary_faces.shape[0]):
        f = boundary_faces[i]
        if fixed_boundary[f]:
            P = owner_cells[f]
            flux[f] = gamma_f[f] * (
                grad_phi[P, 0] * vector_T_f[f, 0] + grad_phi[P, 1] * vector_T_f[f, 1]
            )

    return flux


def compute_nonorthogonal_flux(mesh, gamma_f, grad_phi, fixed_boundary):
    """
    Cross-diffusion term Γ_f (∇φ)_f · T_f per face (FluxV_f in Moukalled).

    fixed_boundary is a boolean face mask marking fixed-value boundary faces;
    all other boundary faces get zero.
    """
    return _nonorthogonal_flux_kernel(
        mesh.owner_cells,
        mesh.neighbor_cells,
        mesh.internal_faces,
        mesh.boundary_faces,
        mesh.face_interp_factors,
        mesh.vector_T_f,
        np.ascontiguousarray(gamma_f, dtype=np.float64),
        np.ascontiguousarray(grad_phi, dtype=np.float64),
        np.ascontiguousarray(fixed_boundary),
    )
