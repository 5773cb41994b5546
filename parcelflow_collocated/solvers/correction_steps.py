"""
Functions for the pressure and velocity reconstruction after the p_rgh solve.
"""

import numpy as np

from parcelflow_collocated.mesh import MeshData2D as Mesh


def reconstruct(mesh: Mesh, face_flux: np.ndarray) -> np.ndarray:
    """
    Cell vector field whose face projections best match a face flux field.

    U_P = inv(sum_f S_f S_f^T / |S_f|) . sum_f (S_f / |S_f|) F_f

    The sums run over all faces of the cell with the same sign for owner and
    neighbour, so a flux F_f = u . S_f of a uniform u is reconstructed exactly.

    Args:
        mesh: The mesh object.
        face_flux: Face flux field of shape (n_faces,).

    Returns:
        Cell vector field of shape (n_cells, 2).
    """
    S = mesh.vector_S_f
    mag_S = mesh.face_areas
    n_hat = S / mag_S[:, None]

    tensor_contrib = S[:, :, None] * n_hat[:, None, :]
    vector_contrib = n_hat * face_flux[:, None]

    T = np.zeros((mesh.n_cells, 2, 2))
    r = np.zeros((mesh.n_cells, 2))
    np.add.at(T, mesh.owner_cells, tensor_contrib)
    np.add.at(r, mesh.owner_cells, vector_contrib)

    f = mesh.internal_faces
    np.add.at(T, mesh.neighbor_cells[f], tensor_contrib[f])
    np.add.at(r, mesh.neighbor_cells[f], vector_contrib[f])

    return np.linalg.solve(T, r[:, :, None])[:, :, 0]


def update_pressure(p_rgh: np.ndarray, rho: np.ndarray, gh: np.ndarray) -> np.ndarray:
    """
    Total pressure from the dynamic pressure.

    p = p_rgh + rho * gh
    """
    return p_rgh + rho * gh


def correct_velocity(
    mesh: Mesh,
    U: np.ndarray,
    rAU: np.ndarray,
    phi: np.ndarray,
    phiU: np.ndarray,
    rhorAUf: np.ndarray,
) -> np.ndarray:
    """
    Corrects the provisional velocity with the flux correction of the pressure solve.

    U_new = U + rAU * reconstruct((phi - phiU) / rhorAUf)

    Args:
        mesh: The mesh object.
        U: Provisional velocity rAU*H, shape (n_cells, 2).
        rAU: Reciprocal momentum diagonal, shape (n_cells,).
        phi: Final, conservative mass flux.
        phiU: Predicted mass flux before the buoyancy and pressure corrections.
        rhorAUf: Face diffusivity of the pressure equation.

    Returns:
        The corrected velocity field.
    """
    return U + rAU[:, None] * reconstruct(mesh, (phi - phiU) / rhorAUf)


def kinetic_energy(U: np.ndarray) -> np.ndarray:
    """K = 0.5 |U|^2"""
    return 0.5 * np.einsum("ij,ij->i", U, U)


def pressure_time_derivative(p: np.ndarray, p_old: np.ndarray, dt: float) -> np.ndarray:
    return (p - p_old) / dt
