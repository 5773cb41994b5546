import logging
from dataclasses import dataclass

import numpy as np
from numba import njit, prange
from scipy.sparse import coo_matrix, csr_matrix

from parcelflow_collocated.assembly.divergence import compute_divergence_from_face_fluxes
from parcelflow_collocated.core.helpers import pressure_boundary_values
from parcelflow_collocated.discretization.diffusion.central_diff import (
    compute_diffusive_coefficients,
    compute_nonorthogonal_flux,
)
from parcelflow_collocated.discretization.gradient.gauss import compute_cell_gradients
from parcelflow_collocated.mesh.mesh_loader import BC_DIRICHLET

log = logging.getLogger(__name__)


@njit(parallel=False)
def _assemble_pressure_matrix_kernel(internal_faces, owner_cells, neighbor_cells, D_f, diag):
    """
    COO triplets of the p_rgh operator: face conductances on the
    off-diagonals plus a precomputed per-cell diagonal contribution.
    """
    n_cells = diag.shape[0]
    n_internal = internal_faces.shape[0]

    max_entries = 4 * n_internal + n_cells
    row = np.zeros(max_entries, dtype=np.int64)
    col = np.zeros(max_entries, dtype=np.int64)
    data = np.zeros(max_entries, dtype=np.float64)
    idx = 0

    for i in prange(n_internal):
        f = internal_faces[i]
        P = owner_cells[f]
        N = neighbor_cells[f]
        coeff = D_f[f]

        row[idx] = P; col[idx] = P; data[idx] = coeff; idx += 1
        row[idx] = P; col[idx] = N; data[idx] = -coeff; idx += 1
        row[idx] = N; col[idx] = N; data[idx] = coeff; idx += 1
        row[idx] = N; col[idx] = P; data[idx] = -coeff; idx += 1

    for c in range(n_cells):
        row[idx] = c; col[idx] = c; data[idx] = diag[c]; idx += 1

    return row[:idx], col[:idx], data[:idx]


@dataclass
class PressureEquation:
    """
    Assembled p_rgh equation A p_rgh = source + div(nonorth_flux).

    The matrix is fixed after assembly. Only the explicit non-orthogonal
    contribution is refreshed between correctors.
    """

    mesh: object
    A: csr_matrix
    source: np.ndarray  # fixed explicit part, integrated per cell
    gamma_f: np.ndarray  # face diffusivity rhorAUf
    D_f: np.ndarray  # implicit face conductance
    fixed_boundary: np.ndarray  # boolean face mask of fixed-value pressure faces
    p_boundary: np.ndarray  # prescribed p_rgh on fixed faces
    nonorth_flux: np.ndarray
    rhs: np.ndarray
    ref_cell: int = -1  # -1 when the level is set by a boundary or by compressibility
    ref_value: float = 0.0
    compatibility_error: float = 0.0  # net source a pinned system cannot balance

    @property
    def needs_reference(self):
        return self.ref_cell >= 0

    def update_nonorthogonal(self, p_rgh):
        """Recompute the explicit cross-diffusion term from p_rgh and refresh rhs."""
        p_b = pressure_boundary_values(self.mesh, p_rgh)
        grad_p = compute_cell_gradients(self.mesh, p_rgh, p_b)
        self.nonorth_flux = compute_nonorthogonal_flux(
            self.mesh, self.gamma_f, grad_p, self.fixed_boundary
        )
        self.rhs = self.source + compute_divergence_from_face_fluxes(self.mesh, self.nonorth_flux)
        return self.rhs

    def flux(self, p_rgh):
        """
        Face flux of the implicit Laplacian for a solved p_rgh, using the
        non-orthogonal term that entered the last solve.

        flux = -D_f (p_N - p_P) - nonorth_flux on internal faces,
        -D_b (p_b - p_P) - nonorth_flux on fixed-value faces, zero elsewhere.
        """
        mesh = self.mesh
        flux = np.zeros(mesh.n_faces)

        f = mesh.internal_faces
        P = mesh.owner_cells[f]
        N = mesh.neighbor_cells[f]
        flux[f] = -self.D_f[f] * (p_rgh[N] - p_rgh[P]) - self.nonorth_flux[f]

        fb = mesh.boundary_faces[self.fixed_boundary[mesh.boundary_faces]]
        Pb = mesh.owner_cells[fb]
        flux[fb] = -self.D_f[fb] * (self.p_boundary[fb] - p_rgh[Pb]) - self.nonorth_flux[fb]
        return flux


def assemble_pressure_equation(
    mesh,
    phi,
    rhorAUf,
    rho,
    rho_old,
    psi,
    psi_old,
    p_rgh,
    p_rgh_old,
    gh,
    mass_source,
    dt,
    ref_cell=0,
    ref_value=None,
):
    """
    Assemble the implicit p_rgh equation in integrated (per-cell) form:

        V(psi rho - psi0 rho0) gh/dt + div(phi) + V(psi p_rgh - psi0 p_rgh0)/dt
          - laplacian(rhorAUf, p_rgh) = V * mass_source

    Parameters
    ----------
    phi : (n_faces,) predicted mass flux including the buoyancy correction
    rhorAUf : (n_faces,) face diffusivity
    p_rgh : (n_cells,) current p_rgh, used for the first non-orthogonal
        estimate and as the default reference value
    mass_source : (n_cells,) combined parcel and film source per unit volume
    ref_cell, ref_value : pressure level used only when no boundary fixes
        p_rgh and the flow is incompressible (psi == 0)

    Returns
    -------
    PressureEquation
    """
    V = mesh.cell_volumes
    n_cells = mesh.n_cells

    # --- Boundary classification ---
    fixed_boundary = np.zeros(mesh.n_faces, dtype=np.bool_)
    bf = mesh.boundary_faces
    fixed_boundary[bf] = mesh.boundary_types[bf, 1] == BC_DIRICHLET
    p_boundary = np.zeros(mesh.n_faces)
    p_boundary[fixed_boundary] = mesh.boundary_values[fixed_boundary, 2]

    # --- Implicit part ---
    D_f = compute_diffusive_coefficients(mesh, rhorAUf)

    diag = V * psi / dt
    fb = bf[fixed_boundary[bf]]
    np.add.at(diag, mesh.owner_cells[fb], D_f[fb])

    row, col, data = _assemble_pressure_matrix_kernel(
        mesh.internal_faces, mesh.owner_cells, mesh.neighbor_cells, D_f, diag
    )

    # --- Fixed explicit part ---
    source = (
        -V * (psi * rho - psi_old * rho_old) * gh / dt
        - compute_divergence_from_face_fluxes(mesh, phi)
        + V * psi_old * p_rgh_old / dt
        + V * mass_source
    )
    np.add.at(source, mesh.owner_cells[fb], D_f[fb] * p_boundary[fb])

    # --- Pressure level ---
    if not fixed_boundary.any() and not np.any(psi):
        # Closed incompressible domain: the rows sum to zero, so the sources must too
        compatibility_error = float(np.sum(source))
        if ref_value is None:
            ref_value = float(p_rgh[ref_cell])
        a_ref = np.bincount(row[row == col], weights=data[row == col], minlength=n_cells)[ref_cell]
        row = np.append(row, ref_cell)
        col = np.append(col, ref_cell)
        data = np.append(data, a_ref)
        source[ref_cell] += a_ref * ref_value
        log.debug("Pinned p_rgh[%d] = %g", ref_cell, ref_value)
    else:
        compatibility_error = 0.0
        ref_cell, ref_value = -1, 0.0

    A = coo_matrix((data, (row, col)), shape=(n_cells, n_cells)).tocsr()

    equation = PressureEquation(
        mesh=mesh,
        A=A,
        source=source,
        gamma_f=np.asarray(rhorAUf, dtype=np.float64),
        D_f=D_f,
        fixed_boundary=fixed_boundary,
        p_boundary=p_boundary,
        nonorth_flux=np.zeros(mesh.n_faces),
        rhs=source.copy(),
        ref_cell=ref_cell,
        ref_value=ref_value,
        compatibility_error=compatibility_error,
    )
    equation.update_nonorthogonal(p_rgh)
    return equation
