"""Flow fields owned by the caller and updated by the pressure-correction step.

Structure:
- FlowState: long-lived cell and face fields (current and old time level)
- MomentumSolution: output of the momentum predictor (rAU, H)
"""

from dataclasses import dataclass, fields

import numpy as np

from parcelflow_collocated.core.exceptions import ConfigurationError


@dataclass
class FlowState:
    """Cell-centred and face fields of the compressible flow.

    Shapes: cell scalars (n_cells,), cell vectors (n_cells, 2), face scalars
    (n_faces,), face vectors (n_faces, 2). ``phi`` is the signed face mass
    flux, positive from owner to neighbour.
    """

    # Density and compressibility
    rho: np.ndarray
    rho_old: np.ndarray
    psi: np.ndarray
    psi_old: np.ndarray

    # Pressure
    p: np.ndarray
    p_old: np.ndarray
    p_rgh: np.ndarray
    p_rgh_old: np.ndarray

    # Velocity
    U: np.ndarray
    U_old: np.ndarray
    U_boundary: np.ndarray

    # Derived
    K: np.ndarray
    dpdt: np.ndarray

    # Face mass flux
    phi: np.ndarray
    phi_old: np.ndarray

    # Hydrostatic potential g·x - ghRef
    gh: np.ndarray
    ghf: np.ndarray

    @classmethod
    def allocate(cls, n_cells: int, n_faces: int, rho: float = 1.0):
        """Allocate all arrays with proper sizes."""
        return cls(
            rho=np.full(n_cells, rho),
            rho_old=np.full(n_cells, rho),
            psi=np.zeros(n_cells),
            psi_old=np.zeros(n_cells),
            p=np.zeros(n_cells),
            p_old=np.zeros(n_cells),
            p_rgh=np.zeros(n_cells),
            p_rgh_old=np.zeros(n_cells),
            U=np.zeros((n_cells, 2)),
            U_old=np.zeros((n_cells, 2)),
            U_boundary=np.zeros((n_faces, 2)),
            K=np.zeros(n_cells),
            dpdt=np.zeros(n_cells),
            phi=np.zeros(n_faces),
            phi_old=np.zeros(n_faces),
            gh=np.zeros(n_cells),
            ghf=np.zeros(n_faces),
        )

    def validate(self, mesh):
        """Check field shapes and finiteness against the mesh."""
        n_cells, n_faces = mesh.n_cells, mesh.n_faces
        expected = {
            "U": (n_cells, 2),
            "U_old": (n_cells, 2),
            "U_boundary": (n_faces, 2),
            "phi": (n_faces,),
            "phi_old": (n_faces,),
            "ghf": (n_faces,),
        }
        for f in fields(self):
            value = getattr(self, f.name)
            shape = expected.get(f.name, (n_cells,))
            if np.shape(value) != shape:
                raise ConfigurationError(
                    f"Field '{f.name}' has shape {np.shape(value)}, expected {shape}"
                )
            if not np.all(np.isfinite(value)):
                raise ConfigurationError(f"Field '{f.name}' contains non-finite values")

    def store_old_time(self):
        """Copy the current time level into the *_old fields."""
        self.rho_old[:] = self.rho
        self.psi_old[:] = self.psi
        self.p_old[:] = self.p
        self.p_rgh_old[:] = self.p_rgh
        self.U_old[:] = self.U
        self.phi_old[:] = self.phi


@dataclass
class MomentumSolution:
    """Provisional momentum solution.

    rAU : (n_cells,) reciprocal of the momentum diagonal per unit volume (V/a_P)
    H   : (n_cells, 2) off-diagonal and source part per unit volume
    """

    rAU: np.ndarray
    H: np.ndarray

    @property
    def U(self):
        """Provisional velocity rAU*H."""
        return self.rAU[:, None] * self.H

    def validate(self, mesh):
        if np.shape(self.rAU) != (mesh.n_cells,):
            raise ConfigurationError(
                f"rAU has shape {np.shape(self.rAU)}, expected ({mesh.n_cells},)"
            )
        if np.shape(self.H) != (mesh.n_cells, 2):
            raise ConfigurationError(
                f"H has shape {np.shape(self.H)}, expected ({mesh.n_cells}, 2)"
            )
        if not (np.all(np.isfinite(self.rAU)) and np.all(np.isfinite(self.H))):
            raise ConfigurationError("Momentum solution contains non-finite values")
        if np.any(self.rAU <= 0.0):
            raise ConfigurationError("rAU must be strictly positive in every cell")
