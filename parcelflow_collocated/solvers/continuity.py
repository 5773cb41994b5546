"""Density transport and continuity diagnostics."""

import logging
from dataclasses import dataclass

import numpy as np

from parcelflow_collocated.assembly.divergence import compute_divergence_from_face_fluxes

log = logging.getLogger(__name__)


class DensityTransport:
    """
    Explicit continuity equation for the density:

        (rho - rho_old)/dt + div(phi)/V = S
    """

    def correct(self, mesh, rho_old, phi, mass_source, dt):
        div_phi = compute_divergence_from_face_fluxes(mesh, phi)
        return rho_old + dt * (mass_source - div_phi / mesh.cell_volumes)


@dataclass
class ContinuityErrors:
    sum_local: float
    global_: float
    cumulative: float

    def __str__(self):
        return (
            f"time step continuity errors : sum local = {self.sum_local:.6g}, "
            f"global = {self.global_:.6g}, cumulative = {self.cumulative:.6g}"
        )


def continuity_errors(mesh, rho, rho_eos, cumulative=0.0):
    """
    Continuity errors relative to the total mass.

    sum_local = sum |rho - rho_eos| V / M, global = sum (rho - rho_eos) V / M,
    with M = sum rho V. The cumulative error adds the global error to the
    running total passed in.
    """
    V = mesh.cell_volumes
    total_mass = np.sum(rho * V)
    sum_local = np.sum(np.abs(rho - rho_eos) * V) / total_mass
    global_err = np.sum((rho - rho_eos) * V) / total_mass
    errors = ContinuityErrors(
        sum_local=float(sum_local),
        global_=float(global_err),
        cumulative=float(cumulative + global_err),
    )
    log.info("%s", errors)
    return errors


def mass_imbalance(mesh, phi, mass_source):
    """Per-cell net mass outflow minus the integrated source, div(phi) - V*S."""
    return compute_divergence_from_face_fluxes(mesh, phi) - mesh.cell_volumes * mass_source
