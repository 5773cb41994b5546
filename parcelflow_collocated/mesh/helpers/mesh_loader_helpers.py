"""Geometry and connectivity helpers for building MeshData2D from raw points and cells."""

import numpy as np
from numba import njit


def _evaluate_bc_value_at_face(raw_value, x_f, field_name, patch_name):
    """
    Boundary value at one face centre.

    Values may be numbers, callables of x, lists of those, or string
    expressions evaluated with ``np`` and ``x`` (the face centre) in scope.
    """
    if callable(raw_value):
        return raw_value(x_f)
    if isinstance(raw_value, (list, tuple)):
        return [_evaluate_bc_value_at_face(item, x_f, field_name, patch_name) for item in raw_value]
    if isinstance(raw_value, str):
        try:
            return eval(raw_value, {"np": np, "x": x_f})
        except Exception as e:
            raise ValueError(
                f"Cannot evaluate {field_name} value '{raw_value}' on patch '{patch_name}' at x = {x_f}: {e}"
            ) from e
    return raw_value


def parse_physical_names(msh_filename):
    """Read the $PhysicalNames block of a Gmsh 2.2 file into {tag: name}."""
    phys_names = {}
    with open(msh_filename, "r") as f:
        for line in f:
            if line.strip() == "$PhysicalNames":
                break
        else:
            return phys_names

        for _ in range(int(next(f))):
            _dim, tag, name = next(f).split(maxsplit=2)
            phys_names[int(tag)] = name.strip().strip('"')
    return phys_names


def _calculate_cell_volumes(points, cells):
    """Shoelace area of each polygonal cell (vertices listed in order)."""
    x = points[cells, 0]
    y = points[cells, 1]
    return 0.5 * np.abs(
        np.sum(x * np.roll(y, -1, axis=1) - y * np.roll(x, -1, axis=1), axis=1)
    )


def _construct_faces(points, cells, cell_centers):
    """
    Build unique edges with owner/neighbour cells and owner-outward area vectors.

    The first cell visiting an edge owns it; the second becomes its neighbour.
    """
    edge_to_face = {}
    face_vertices = []
    owners = []
    neighbors = []

    for cell_id, cell in enumerate(cells):
        n_vertices = len(cell)
        for i in range(n_vertices):
            a, b = int(cell[i]), int(cell[(i + 1) % n_vertices])
            edge = (a, b) if a < b else (b, a)
            face_id = edge_to_face.get(edge)
            if face_id is None:
                edge_to_face[edge] = len(face_vertices)
                face_vertices.append(edge)
                owners.append(cell_id)
                neighbors.append(-1)
            else:
                neighbors[face_id] = cell_id

    face_vertices = np.array(face_vertices, dtype=np.int64)
    owner_cells = np.array(owners, dtype=np.int64)
    neighbor_cells = np.array(neighbors, dtype=np.int64)

    v0 = points[face_vertices[:, 0]]
    v1 = points[face_vertices[:, 1]]
    face_centers = 0.5 * (v0 + v1)
    edge = v1 - v0
    vector_S_f = np.column_stack((edge[:, 1], -edge[:, 0]))

    # Orient S_f owner -> neighbour (internal) or owner -> outside (boundary)
    internal = neighbor_cells >= 0
    direction = face_centers - cell_centers[owner_cells]
    direction[internal] = (
        cell_centers[neighbor_cells[internal]] - cell_centers[owner_cells[internal]]
    )
    flip = np.einsum("ij,ij->i", vector_S_f, direction) < 0.0
    vector_S_f[flip] *= -1.0

    return edge_to_face, face_vertices, face_centers, vector_S_f, owner_cells, neighbor_cells


@njit(fastmath=True)
def _face_geometry_kernel(
    internal_faces, boundary_faces, owner_cells, neighbor_cells, cell_centers, face_centers, vector_S_f
):
    """
    Centroid vectors, unit vectors e and neighbour weights per face.

    Internal faces use d_CE = x_N - x_P; boundary faces use x_f - x_P and
    record its length in d_Cb. Boundary weights are 1 (the face value).
    """
    n_faces = vector_S_f.shape[0]
    vector_d_CE = np.zeros((n_faces, 2))
    unit_vector_e = np.zeros((n_faces, 2))
    face_interp_factors = np.ones(n_faces)
    d_Cb = np.zeros(n_faces)

    for i in range(internal_faces.shape[0]):
        f = internal_faces[i]
        P = owner_cells[f]
        N = neighbor_cells[f]
        dx = cell_centers[N, 0] - cell_centers[P, 0]
        dy = cell_centers[N, 1] - cell_centers[P, 1]
        d_mag = np.sqrt(dx * dx + dy * dy)
        vector_d_CE[f, 0] = dx
        vector_d_CE[f, 1] = dy
        unit_vector_e[f, 0] = dx / d_mag
        unit_vector_e[f, 1] = dy / d_mag

        # g_f = (x_f - x_P)·S_f / (x_N - x_P)·S_f
        Sx = vector_S_f[f, 0]
        Sy = vector_S_f[f, 1]
        proj_PN = Sx * dx + Sy * dy
        proj_Pf = Sx * (face_centers[f, 0] - cell_centers[P, 0]) + Sy * (face_centers[f, 1] - cell_centers[P, 1])
        g_f = 0.5
        if abs(proj_PN) > 1e-30:
            g_f = proj_Pf / proj_PN
        face_interp_factors[f] = min(max(g_f, 0.0), 1.0)

    for i in range(boundary_faces.shape[0]):
        f = boundary_faces[i]
        P = owner_cells[f]
        dx = face_centers[f, 0] - cell_centers[P, 0]
        dy = face_centers[f, 1] - cell_centers[P, 1]
        d_Cb[f] = np.sqrt(dx * dx + dy * dy)
        unit_vector_e[f, 0] = dx / d_Cb[f]
        unit_vector_e[f, 1] = dy / d_Cb[f]

    return vector_d_CE, unit_vector_e, face_interp_factors, d_Cb


def _over_relaxed_split(vector_S_f, unit_vector_e):
    """S_f = E_f + T_f with E_f = |S_f|^2 / (S_f·e) e (Moukalled 8.58)."""
    S_dot_e = np.einsum("ij,ij->i", vector_S_f, unit_vector_e)
    S_sq = np.einsum("ij,ij->i", vector_S_f, vector_S_f)
    vector_E_f = (S_sq / S_dot_e)[:, None] * unit_vector_e
    return vector_E_f, vector_S_f - vector_E_f


@njit
def _cell_faces_kernel(n_cells, owner_cells, neighbor_cells):
    """Face ids of every cell, padded with -1 to the widest cell."""
    n_faces = owner_cells.shape[0]
    count = np.zeros(n_cells, dtype=np.int64)
    for f in range(n_faces):
        count[owner_cells[f]] += 1
        if neighbor_cells[f] >= 0:
            count[neighbor_cells[f]] += 1

    width = 0
    for c in range(n_cells):
        width = max(width, count[c])

    cell_faces = -np.ones((n_cells, width), dtype=np.int64)
    count[:] = 0
    for f in range(n_faces):
        P = owner_cells[f]
        cell_faces[P, count[P]] = f
        count[P] += 1
        N = neighbor_cells[f]
        if N >= 0:
            cell_faces[N, count[N]] = f
            count[N] += 1
    return cell_faces
