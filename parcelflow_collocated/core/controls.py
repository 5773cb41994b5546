"""Run-time controls of the pressure-correction step.

Structure:
- LinearSolverSettings: one entry of the solver dictionary
- PressureCorrectionControls: corrector counts, pressure reference, policies
- NonOrthogonalControl: iteration policy driving the non-orthogonal loop
"""

import logging
from dataclasses import dataclass, field, fields
from enum import Enum

import yaml

from parcelflow_collocated.core.exceptions import ConfigurationError

log = logging.getLogger(__name__)

NON_CONVERGENCE_POLICIES = ("ignore", "warn", "raise")
LINEAR_SOLVER_METHODS = ("direct", "bicgstab", "cg", "gmres")
PRECONDITIONERS = ("amg", "jacobi", "none")


@dataclass
class LinearSolverSettings:
    method: str = "direct"
    preconditioner: str = "none"
    tolerance: float = 1e-8
    rel_tol: float = 0.0
    max_iterations: int = 1000

    def __post_init__(self):
        self.method = str(self.method).lower()
        self.preconditioner = str(self.preconditioner).lower()
        if self.method not in LINEAR_SOLVER_METHODS:
            raise ConfigurationError(
                f"Unknown linear solver method '{self.method}', expected one of {LINEAR_SOLVER_METHODS}"
            )
        if self.preconditioner not in PRECONDITIONERS:
            raise ConfigurationError(
                f"Unknown preconditioner '{self.preconditioner}', expected one of {PRECONDITIONERS}"
            )
        if self.tolerance < 0.0 or self.rel_tol < 0.0:
            raise ConfigurationError("Solver tolerances must be non-negative")
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")


def _default_solvers():
    return {
        "p_rgh": LinearSolverSettings(tolerance=1e-8, rel_tol=0.01),
        "p_rghFinal": LinearSolverSettings(tolerance=1e-8, rel_tol=0.0),
    }


@dataclass
class PressureCorrectionControls:
    """Controls of one pressure-correction call."""

    n_non_orth_correctors: int = 0
    p_rgh_ref_cell: int = 0
    p_rgh_ref_value: float | None = None  # None keeps the current value at the reference cell
    ddt_phi_coeff: float = -1.0  # negative selects the automatic coupling coefficient
    buoyancy_non_orthogonal_correction: bool = True
    non_convergence: str = "ignore"  # continue silently; the result is still flagged degraded
    solvers: dict = field(default_factory=_default_solvers)

    def __post_init__(self):
        if self.n_non_orth_correctors < 0:
            raise ConfigurationError("n_non_orth_correctors must be non-negative")
        if self.non_convergence not in NON_CONVERGENCE_POLICIES:
            raise ConfigurationError(
                f"non_convergence must be one of {NON_CONVERGENCE_POLICIES}, got '{self.non_convergence}'"
            )
        if self.ddt_phi_coeff > 1.0:
            raise ConfigurationError("ddt_phi_coeff must be negative (automatic) or in [0, 1]")
        for key in ("p_rgh", "p_rghFinal"):
            if key not in self.solvers:
                raise ConfigurationError(f"Missing linear solver settings for '{key}'")

    @classmethod
    def from_dict(cls, config: dict):
        config = dict(config or {})
        known = {f.name for f in fields(cls)}
        unknown = set(config) - known
        if unknown:
            raise ConfigurationError(f"Unknown pressure-correction controls: {sorted(unknown)}")

        solvers = _default_solvers()
        for key, settings in (config.pop("solvers", None) or {}).items():
            solvers[key] = LinearSolverSettings(**settings)
        return cls(solvers=solvers, **config)

    def solver_settings(self, final: bool) -> LinearSolverSettings:
        return self.solvers["p_rghFinal" if final else "p_rgh"]


def load_controls(filename):
    """Read PressureCorrectionControls from the `pressure_correction` block of a YAML file."""
    with open(filename, "r") as f:
        config = yaml.safe_load(f) or {}
    log.info("Loaded pressure-correction controls from %s", filename)
    return PressureCorrectionControls.from_dict(config.get("pressure_correction", {}))


class CorrectionState(Enum):
    CORRECTING = "correcting"
    FINAL_ITERATION = "final_iteration"


class NonOrthogonalControl:
    """
    Iteration policy for the non-orthogonal corrector loop.

    ``correct_non_orthogonal()`` returns True for n_non_orth_correctors + 1
    passes, then resets and returns False so the same object can drive the
    next call.
    """

    def __init__(self, n_non_orth_correctors=0, final_inner_iter=True):
        if n_non_orth_correctors < 0:
            raise ConfigurationError("n_non_orth_correctors must be non-negative")
        self.n_non_orth_correctors = n_non_orth_correctors
        self.final_inner_iter = final_inner_iter
        self.corr = 0

    def correct_non_orthogonal(self):
        if self.corr <= self.n_non_orth_correctors:
            self.corr += 1
            return True
        self.corr = 0
        return False

    def final_non_orthogonal_iter(self):
        return self.corr == self.n_non_orth_correctors + 1

    @property
    def state(self):
        if self.final_non_orthogonal_iter():
            return CorrectionState.FINAL_ITERATION
        return CorrectionState.CORRECTING
