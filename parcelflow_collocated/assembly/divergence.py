import numpy as np
from numba import njit


@njit
def _divergence_kernel(owner_cells, neighbor_cells, face_fluxes, n_cells):
    divergence = np.zeros(n_cells)

    for f in range(face_fluxes.shape[0]):
        C = owner_cells[f]
        F = neighbor_cells[f]

        flux = face_fluxes[f]

        divergence[C] += flux  # flux leaving C (owner)
        if F >= 0:
            divergence[F] -= flux  # flux entering F (neighbor)

    return divergence


def compute_divergence_from_face_fluxes(mesh, face_fluxes):
    """
    Compute divergence (mass imbalance) per cell from face mass fluxes.

    Each face flux is assumed to be rho * u_f ⋅ S_f, pointing from owner to
    neighbor. The result is the integrated (not volume-averaged) net outflow.
    """
    return _divergence_kernel(
        mesh.owner_cells,
        mesh.neighbor_cells,
        np.ascontiguousarray(face_fluxes, dtype=np.float64),
        mesh.n_cells,
    )
