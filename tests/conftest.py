# conftest.py

import numpy as np
import pytest

from parcelflow_collocated.assembly.hydrostatic import hydrostatic_potential
from parcelflow_collocated.core.controls import LinearSolverSettings, PressureCorrectionControls
from parcelflow_collocated.core.fields import FlowState
from parcelflow_collocated.mesh.structured_uniform import generate

WALL = {"velocity": {"bc": "wall", "value": [0.0, 0.0]}, "pressure": {"bc": "zeroGradient"}}

CLOSED_BOX = {name: WALL for name in ("bottom", "right", "top", "left")}

CHANNEL = {
    "left": {"velocity": {"bc": "inlet", "value": [1.0, 0.0]}, "pressure": {"bc": "zeroGradient"}},
    "right": {"velocity": {"bc": "outlet"}, "pressure": {"bc": "fixedValue", "value": 0.0}},
    "bottom": WALL,
    "top": WALL,
}

TEST_MESHES = {
    "structured_uniform": dict(nx=6, ny=5, perturbation=0.0),
    "structured_perturbed": dict(nx=6, ny=5, perturbation=0.3, seed=3),
}


def build_mesh(mesh_label, boundary_conditions=CLOSED_BOX, Lx=1.0, Ly=1.0):
    return generate(Lx=Lx, Ly=Ly, boundary_conditions=boundary_conditions, **TEST_MESHES[mesh_label])


def make_state(mesh, rho=1.0, g=(0.0, 0.0)):
    state = FlowState.allocate(mesh.n_cells, mesh.n_faces, rho=rho)
    state.gh[:], state.ghf[:] = hydrostatic_potential(mesh, g)
    return state


def direct_controls(**kwargs):
    solvers = {
        "p_rgh": LinearSolverSettings(method="direct", tolerance=1e-6),
        "p_rghFinal": LinearSolverSettings(method="direct", tolerance=1e-9),
    }
    return PressureCorrectionControls(solvers=solvers, **kwargs)


@pytest.fixture
def mesh_instance(mesh_label):
    return build_mesh(mesh_label)


@pytest.fixture
def channel_mesh(mesh_label):
    return build_mesh(mesh_label, boundary_conditions=CHANNEL, Lx=2.0, Ly=1.0)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


def pytest_generate_tests(metafunc):
    if "mesh_label" in metafunc.fixturenames:
        metafunc.parametrize("mesh_label", list(TEST_MESHES))
