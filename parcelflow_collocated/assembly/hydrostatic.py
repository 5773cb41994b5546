import numpy as np

from parcelflow_collocated.core.helpers import face_normal_gradient, interpolate_to_face
from parcelflow_collocated.discretization.gradient.gauss import compute_cell_gradients


def hydrostatic_potential(mesh, g, h_ref=0.0):
    """
    Gravitational potential at cell and face centres.

    gh = g·x - ghRef with ghRef = -|g| h_ref, so that p = p_rgh + rho*gh.

    Returns
    -------
    gh : (n_cells,) ndarray
    ghf : (n_faces,) ndarray
    """
    g = np.asarray(g, dtype=np.float64)
    ghRef = -np.linalg.norm(g) * h_ref
    gh = mesh.cell_centers @ g - ghRef
    ghf = mesh.face_centers @ g - ghRef
    return gh, ghf


def correct_flux_for_buoyancy(mesh, phiU, rhorAUf, ghf, rho, non_orthogonal_correction=True):
    """
    phi = phiU - rhorAUf * ghf * snGrad(rho) * |S_f|

    With ``non_orthogonal_correction`` the density gradient carries the same
    (grad rho)_f·T_f term as the p_rgh Laplacian, so hydrostatic balance holds
    on non-orthogonal faces.
    """
    grad_rho = None
    if non_orthogonal_correction:
        grad_rho = compute_cell_gradients(mesh, rho, interpolate_to_face(mesh, rho))
    return phiU - rhorAUf * ghf * face_normal_gradient(mesh, rho, grad_rho) * mesh.face_areas
