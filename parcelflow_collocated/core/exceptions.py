"""Exceptions raised by the pressure-correction step."""


class PressureCorrectionError(Exception):
    """Base class for errors raised by the pressure-correction step."""


class ConfigurationError(PressureCorrectionError, ValueError):
    """Inconsistent inputs detected before any field is modified."""


class LinearSolverError(PressureCorrectionError, RuntimeError):
    """The linear solver broke down (illegal input or numerical breakdown)."""


class SolverNotConvergedError(PressureCorrectionError):
    """The pressure solve missed its tolerance under the 'raise' policy."""

    def __init__(self, message, performance=None):
        super().__init__(message)
        self.performance = performance
