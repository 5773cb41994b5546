"""Collocated finite volume pressure-correction step for compressible multiphase flow."""

__version__ = "0.1.0"
