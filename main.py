import logging
import os
import sys

import numpy as np
import yaml
from matplotlib.backends.backend_pdf import PdfPages
import matplotlib.pyplot as plt

from parcelflow_collocated.assembly.hydrostatic import hydrostatic_potential
from parcelflow_collocated.core.controls import load_controls
from parcelflow_collocated.core.fields import FlowState, MomentumSolution
from parcelflow_collocated.core.sources import FixedMassSource, NoMassSource
from parcelflow_collocated.mesh.mesh_loader import load_boundary_conditions
from parcelflow_collocated.mesh.structured_uniform import generate
from parcelflow_collocated.solvers.pressure_corrector import PressureCorrector

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
log = logging.getLogger("parcelflow")

case_file = sys.argv[1] if len(sys.argv) > 1 else "shared_configs/cases/stratified_column.yaml"
with open(case_file, "r") as f:
    case = yaml.safe_load(f)["case"]

# Mesh and boundary conditions
mesh_cfg = case["mesh"]
mesh = generate(
    nx=mesh_cfg["nx"],
    ny=mesh_cfg["ny"],
    Lx=mesh_cfg["Lx"],
    Ly=mesh_cfg["Ly"],
    perturbation=mesh_cfg.get("perturbation", 0.0),
    boundary_conditions=load_boundary_conditions(case["boundaries"]),
)
log.info("Mesh: %s", mesh)

controls = load_controls(case["controls"])
corrector = PressureCorrector(mesh, controls)

# Initial state
dt = float(case["dt"])
state = FlowState.allocate(mesh.n_cells, mesh.n_faces)
state.gh[:], state.ghf[:] = hydrostatic_potential(mesh, case["gravity"], case.get("h_ref", 0.0))

y = mesh.cell_centers[:, 1]
rho_bottom, rho_top = case["density"]["bottom"], case["density"]["top"]
state.rho[:] = rho_bottom + (rho_top - rho_bottom) * y / mesh_cfg["Ly"]
state.psi[:] = case.get("compressibility", 0.0)
state.p[:] = state.p_rgh + state.rho * state.gh
state.store_old_time()

# Mass sources
film = NoMassSource(mesh.n_cells)
parcel_cfg = case.get("parcels")
if parcel_cfg:
    Srho = np.zeros(mesh.n_cells)
    cell = np.argmin(np.linalg.norm(mesh.cell_centers - np.asarray(parcel_cfg["location"]), axis=1))
    Srho[cell] = parcel_cfg["rate"]
    parcels = FixedMassSource(Srho)
else:
    parcels = NoMassSource(mesh.n_cells)

# Frozen momentum predictor: constant rAU, H reproducing the previous velocity
rAU = np.full(mesh.n_cells, float(case["rAU"]))

print("Running pressure correction...")
continuity_history = []
for step in range(int(case["n_steps"])):
    momentum = MomentumSolution(rAU=rAU, H=state.U / rAU[:, None])
    result = corrector.correct(state, momentum, parcels, film, dt)
    continuity_history.append(abs(result.continuity_errors.sum_local))
    log.info(
        "Step %d: %d p_rgh solves, max |mass imbalance| = %.3e, degraded = %s",
        step + 1, result.n_solves, np.max(np.abs(result.mass_imbalance)), result.degraded,
    )
    state.store_old_time()
print("Pressure correction completed.")

# Plotting
x = mesh.cell_centers[:, 0]
velocity_magnitude = np.sqrt(state.U[:, 0] ** 2 + state.U[:, 1] ** 2)

pdf_filename = f"plots/{case['name']}_ncells{mesh.n_cells}.pdf"
os.makedirs("plots", exist_ok=True)

with PdfPages(pdf_filename) as pdf:
    fig1 = plt.figure(figsize=(15, 10))
    fig1.suptitle(f"{case['name']}\nNumber of Cells = {mesh.n_cells}", fontsize=16, y=0.98)
    gs = plt.GridSpec(2, 2, height_ratios=[1, 1])
    panels = [
        (state.p_rgh, "p_rgh"),
        (state.p, "Pressure"),
        (velocity_magnitude, "Velocity Magnitude"),
        (np.abs(result.mass_imbalance), "Mass Imbalance"),
    ]
    for k, (field, title) in enumerate(panels):
        ax = fig1.add_subplot(gs[k // 2, k % 2])
        cf = ax.tricontourf(x, y, field, levels=50, cmap="coolwarm")
        fig1.colorbar(cf, ax=ax)
        ax.set_title(title)
        ax.set_aspect("equal", "box")
    fig1.tight_layout(rect=[0, 0, 1, 0.96])
    pdf.savefig(fig1)
    plt.close(fig1)

    fig2 = plt.figure(figsize=(10, 6))
    ax_hist = fig2.add_subplot(1, 1, 1)
    ax_hist.semilogy(range(1, len(continuity_history) + 1), np.maximum(continuity_history, 1e-300), "g-")
    ax_hist.grid(True)
    ax_hist.set_xlabel("Time step")
    ax_hist.set_ylabel("Continuity error (sum local)")
    fig2.tight_layout()
    pdf.savefig(fig2)
    plt.close(fig2)

print(f"Plots saved to {pdf_filename}")
