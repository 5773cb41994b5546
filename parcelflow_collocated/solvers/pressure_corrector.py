"""
Pressure-correction step of the segregated compressible solver.

One call predicts the face mass flux from the momentum solution, removes the
buoyancy part, solves the p_rgh equation with non-orthogonal correctors and
reconstructs p, U, K and dpdt from the conservative flux.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from parcelflow_collocated.assembly.hydrostatic import correct_flux_for_buoyancy
from parcelflow_collocated.assembly.pressure_correction_eq_assembly import (
    assemble_pressure_equation,
)
from parcelflow_collocated.assembly.rhie_chow import predict_flux
from parcelflow_collocated.core.controls import NonOrthogonalControl, PressureCorrectionControls
from parcelflow_collocated.core.exceptions import (
    ConfigurationError,
    PressureCorrectionError,
    SolverNotConvergedError,
)
from parcelflow_collocated.core.helpers import interpolate_to_face, velocity_boundary_values
from parcelflow_collocated.linear_solvers.scipy_solver import solve
from parcelflow_collocated.solvers.continuity import (
    ContinuityErrors,
    DensityTransport,
    continuity_errors,
    mass_imbalance,
)
from parcelflow_collocated.solvers.correction_steps import (
    correct_velocity,
    kinetic_energy,
    pressure_time_derivative,
    update_pressure,
)

log = logging.getLogger(__name__)


@dataclass
class PressureCorrectionResult:
    performances: list
    continuity_errors: ContinuityErrors
    degraded: bool
    phiU: np.ndarray
    mass_imbalance: np.ndarray
    warnings: list = field(default_factory=list)

    @property
    def n_solves(self):
        return len(self.performances)


class PressureCorrector:
    """
    Pressure-correction step bound to one mesh.

    Parameters
    ----------
    mesh : MeshData2D
    controls : PressureCorrectionControls, optional
    linear_solver : callable, optional
        ``solve(A, b, settings, x0=None) -> (x, SolverPerformance)``
    density_model : object, optional
        Exposes ``correct(mesh, rho_old, phi, mass_source, dt) -> rho``.
    """

    def __init__(self, mesh, controls=None, linear_solver=solve, density_model=None):
        self.mesh = mesh
        self.controls = controls or PressureCorrectionControls()
        self.linear_solver = linear_solver
        self.density_model = density_model or DensityTransport()
        self.cumulative_continuity_error = 0.0

        if not 0 <= self.controls.p_rgh_ref_cell < mesh.n_cells:
            raise ConfigurationError(
                f"p_rgh_ref_cell {self.controls.p_rgh_ref_cell} outside [0, {mesh.n_cells})"
            )

    def _validate(self, state, momentum, parcel_source, film_source, dt):
        mesh = self.mesh
        state.validate(mesh)
        momentum.validate(mesh)
        if not (np.isfinite(dt) and dt > 0.0):
            raise ConfigurationError(f"Time step must be positive and finite, got {dt}")
        if np.any(state.rho <= 0.0):
            raise ConfigurationError("Density must be strictly positive in every cell")

        sources = {}
        for name, source in (("parcels", parcel_source), ("surface film", film_source)):
            Srho = np.asarray(source.Srho(), dtype=np.float64)
            if Srho.shape != (mesh.n_cells,):
                raise ConfigurationError(
                    f"Mass source of {name} has shape {Srho.shape}, expected ({mesh.n_cells},)"
                )
            if not np.all(np.isfinite(Srho)):
                raise ConfigurationError(f"Mass source of {name} contains non-finite values")
            sources[name] = Srho
        return sources["parcels"] + sources["surface film"]

    def _check_compatibility(self, equation, warnings):
        """
        Flag a pinned system whose net source cannot be balanced. The
        mismatch then ends up in the reference cell. Returns True when degraded.
        """
        if not equation.needs_reference:
            return False
        tolerance = self.controls.solver_settings(final=True).tolerance
        if abs(equation.compatibility_error) <= tolerance:
            return False
        message = (
            f"Net mass source {equation.compatibility_error:.6g} has no outlet in a closed "
            f"incompressible domain; the imbalance is absorbed by reference cell {equation.ref_cell}"
        )
        log.warning(message)
        warnings.append(message)
        return True

    def _check_convergence(self, performance, warnings):
        """Apply the non-convergence policy. Returns True when the solve is degraded."""
        if performance.converged:
            return False
        message = f"p_rgh solve did not converge: {performance}"
        policy = self.controls.non_convergence
        if policy == "raise":
            raise SolverNotConvergedError(message, performance)
        if policy == "warn":
            log.warning(message)
        warnings.append(message)
        return True

    def correct(
        self,
        state,
        momentum,
        parcel_source,
        film_source,
        dt,
        control=None,
        final_inner_iter=True,
    ):
        """
        Run one pressure-correction step, updating ``state`` in place.

        ``state.phi`` is written on the terminal non-orthogonal pass only;
        p_rgh, p, rho, U, U_boundary, K and dpdt are written once after the
        loop. Configuration errors and a non-converged solve under the
        'raise' policy leave every field untouched.

        Parameters
        ----------
        state : FlowState
        momentum : MomentumSolution
        parcel_source, film_source : MassSource
        dt : float
        control : NonOrthogonalControl-like, optional
            Injected loop policy. Built from the controls when None.
        final_inner_iter : bool
            Whether this is the last inner iteration of the outer loop. Ignored
            when ``control`` carries its own ``final_inner_iter``.

        Returns
        -------
        PressureCorrectionResult
        """
        mesh = self.mesh
        controls = self.controls
        mass_source = self._validate(state, momentum, parcel_source, film_source, dt)

        if control is None:
            control = NonOrthogonalControl(controls.n_non_orth_correctors, final_inner_iter)
        final_inner_iter = getattr(control, "final_inner_iter", final_inner_iter)

        # --- Flux prediction ---
        rAU = momentum.rAU
        U = momentum.U
        phiU = predict_flux(
            mesh, U, rAU, state.rho, state.rho_old, state.U_old, state.phi_old, dt,
            ddt_phi_coeff=controls.ddt_phi_coeff,
            U_boundary=velocity_boundary_values(mesh, U),
        )
        rhorAUf = interpolate_to_face(mesh, state.rho * rAU)
        phi = correct_flux_for_buoyancy(
            mesh, phiU, rhorAUf, state.ghf, state.rho,
            non_orthogonal_correction=controls.buoyancy_non_orthogonal_correction,
        )

        # --- Implicit p_rgh equation ---
        p_rgh = state.p_rgh.copy()
        equation = assemble_pressure_equation(
            mesh, phi, rhorAUf,
            state.rho, state.rho_old, state.psi, state.psi_old,
            p_rgh, state.p_rgh_old, state.gh,
            mass_source, dt,
            ref_cell=controls.p_rgh_ref_cell,
            ref_value=controls.p_rgh_ref_value,
        )

        warnings = []
        degraded = self._check_compatibility(equation, warnings)

        # --- Non-orthogonal correctors ---
        performances = []
        reconciled = False
        first_pass = True
        while control.correct_non_orthogonal():
            if not first_pass:
                equation.update_nonorthogonal(p_rgh)
            first_pass = False

            final_non_orth = control.final_non_orthogonal_iter()
            settings = controls.solver_settings(final_inner_iter and final_non_orth)
            p_rgh, performance = self.linear_solver(equation.A, equation.rhs, settings, x0=p_rgh)
            performances.append(performance)
            log.info("Solving for p_rgh, %s", performance)
            degraded |= self._check_convergence(performance, warnings)

            if final_non_orth:
                state.phi[:] = phi + equation.flux(p_rgh)
                reconciled = True

        if not reconciled:
            raise PressureCorrectionError(
                "Non-orthogonal loop finished without a final pass; flux was not reconciled"
            )

        # --- Reconstruction ---
        rho_eos = state.rho.copy()
        state.p_rgh[:] = p_rgh
        state.p[:] = update_pressure(p_rgh, rho_eos, state.gh)

        state.rho[:] = self.density_model.correct(mesh, state.rho_old, state.phi, mass_source, dt)
        errors = continuity_errors(
            mesh, state.rho, rho_eos, cumulative=self.cumulative_continuity_error
        )
        self.cumulative_continuity_error = errors.cumulative

        state.U[:] = correct_velocity(mesh, U, rAU, state.phi, phiU, rhorAUf)
        state.U_boundary[:] = velocity_boundary_values(mesh, state.U)
        state.K[:] = kinetic_energy(state.U)
        state.dpdt[:] = pressure_time_derivative(state.p, state.p_old, dt)

        return PressureCorrectionResult(
            performances=performances,
            continuity_errors=errors,
            degraded=degraded,
            phiU=phiU,
            mass_imbalance=mass_imbalance(mesh, state.phi, mass_source),
            warnings=warnings,
        )
