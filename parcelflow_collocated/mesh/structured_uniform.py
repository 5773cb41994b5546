"""Structured quadrilateral mesh generator.

Builds a uniform nx × ny quad mesh on [0, Lx] × [0, Ly] with the boundary
segments tagged as physical groups (bottom, right, top, left). Interior
vertices can be randomly displaced to obtain a non-orthogonal mesh with the
same topology.
"""

import logging

import numpy as np

from parcelflow_collocated.mesh.mesh_loader import build_mesh_data

log = logging.getLogger(__name__)

PATCH_TAGS = {"bottom": 1, "right": 2, "top": 3, "left": 4}


def generate(
    nx: int = 10,
    ny: int = 10,
    Lx: float = 1.0,
    Ly: float = 1.0,
    perturbation: float = 0.0,
    seed: int = 0,
    boundary_conditions: dict | None = None,
):
    """Generate a structured quadrilateral mesh with physical tags.

    Parameters
    ----------
    nx, ny : int
        Number of cells in x and y directions.
    Lx, Ly : float
        Domain extent.
    perturbation : float
        Maximum interior vertex displacement as a fraction of the cell size.
        Keep below 0.5 so that cells stay convex.
    seed : int
        Seed of the displacement generator.
    boundary_conditions : dict, optional
        Mapping patch name -> {"velocity": {...}, "pressure": {...}} in the
        same layout as the boundary YAML files.

    Returns
    -------
    MeshData2D
    """
    if nx < 1 or ny < 1:
        raise ValueError("nx and ny must be positive")

    dx = Lx / nx
    dy = Ly / ny
    xs = np.linspace(0.0, Lx, nx + 1)
    ys = np.linspace(0.0, Ly, ny + 1)
    X, Y = np.meshgrid(xs, ys)  # shape (ny+1, nx+1), vertex k = j*(nx+1) + i
    points = np.column_stack((X.ravel(), Y.ravel()))

    if perturbation > 0.0:
        rng = np.random.default_rng(seed)
        interior = np.zeros((ny + 1, nx + 1), dtype=bool)
        interior[1:-1, 1:-1] = True
        interior = interior.ravel()
        n_int = int(interior.sum())
        points[interior, 0] += perturbation * dx * rng.uniform(-0.5, 0.5, n_int)
        points[interior, 1] += perturbation * dy * rng.uniform(-0.5, 0.5, n_int)

    def vid(i, j):
        return j * (nx + 1) + i

    cells = np.array(
        [
            [vid(i, j), vid(i + 1, j), vid(i + 1, j + 1), vid(i, j + 1)]
            for j in range(ny)
            for i in range(nx)
        ],
        dtype=np.int64,
    )

    boundary_lines = []
    boundary_tags = []
    for i in range(nx):
        boundary_lines.append([vid(i, 0), vid(i + 1, 0)])
        boundary_tags.append(PATCH_TAGS["bottom"])
        boundary_lines.append([vid(i, ny), vid(i + 1, ny)])
        boundary_tags.append(PATCH_TAGS["top"])
    for j in range(ny):
        boundary_lines.append([vid(nx, j), vid(nx, j + 1)])
        boundary_tags.append(PATCH_TAGS["right"])
        boundary_lines.append([vid(0, j), vid(0, j + 1)])
        boundary_tags.append(PATCH_TAGS["left"])

    physical_names = {tag: name for name, tag in PATCH_TAGS.items()}
    log.debug("Structured mesh %dx%d on [0,%g]x[0,%g]", nx, ny, Lx, Ly)

    return build_mesh_data(
        points,
        cells,
        np.array(boundary_lines, dtype=np.int64),
        np.array(boundary_tags, dtype=np.int64),
        physical_id_to_name=physical_names,
        boundary_conditions=boundary_conditions or {},
    )
