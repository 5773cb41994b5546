"""Mass sources from dispersed parcels and the liquid film.

Each source reports a per-cell mass source per unit volume (kg/m^3/s),
evaluated at the current time level.
"""

from abc import ABC, abstractmethod

import numpy as np


class MassSource(ABC):
    @abstractmethod
    def Srho(self):
        """Return the per-cell mass source density, shape (n_cells,)."""


class FixedMassSource(MassSource):
    """Source with prescribed values, e.g. from an external parcel cloud."""

    def __init__(self, values):
        self.values = np.asarray(values, dtype=np.float64)

    def Srho(self):
        return self.values


class NoMassSource(MassSource):
    def __init__(self, n_cells):
        self.n_cells = n_cells

    def Srho(self):
        return np.zeros(self.n_cells)
