import logging

import numpy as np
import meshio
import yaml

from parcelflow_collocated.mesh.mesh_data import MeshData2D
from .helpers.mesh_loader_helpers import (
    _calculate_cell_volumes,
    _cell_faces_kernel,
    _construct_faces,
    _evaluate_bc_value_at_face,
    _face_geometry_kernel,
    _over_relaxed_split,
    parse_physical_names,
)

log = logging.getLogger(__name__)

# Boundary condition codes stored in MeshData2D.boundary_types
BC_WALL = 0
BC_DIRICHLET = 1
BC_INLET = 2
BC_OUTLET = 3
BC_NEUMANN = 4

BC_TYPE_MAP = {
    "wall": BC_WALL,
    "dirichlet": BC_DIRICHLET,
    "fixedvalue": BC_DIRICHLET,
    "inlet": BC_INLET,
    "outlet": BC_OUTLET,
    "neumann": BC_NEUMANN,
    "zerogradient": BC_NEUMANN,
}

# Velocity types whose boundary value is prescribed rather than extrapolated
FIXED_VELOCITY_TYPES = (BC_WALL, BC_DIRICHLET, BC_INLET)


def ensure_contiguous(*arrays):
    return [np.ascontiguousarray(a) for a in arrays]


def load_boundary_conditions(bc_config_file):
    """Read the `boundaries` mapping of a YAML boundary-condition file."""
    with open(bc_config_file, "r") as f:
        boundary_config = yaml.safe_load(f) or {}
    return boundary_config.get("boundaries", {})


def load_mesh(filename, bc_config_file=None):
    """
    Load a 2D mesh (triangles or quads) from a Gmsh .msh file
    and return a MeshData2D object with boundary tagging.
    """
    physical_names = parse_physical_names(filename)
    boundary_conditions = {}
    if bc_config_file is not None:
        boundary_conditions = load_boundary_conditions(bc_config_file)

    mesh = meshio.read(filename)
    points = np.asarray(mesh.points[:, :2], dtype=np.float64)

    if "triangle" in mesh.cells_dict:
        cell_type = "triangle"
    elif "quad" in mesh.cells_dict:
        cell_type = "quad"
    else:
        raise ValueError("Unsupported mesh type: must contain triangle or quad cells")

    cells = np.asarray(mesh.cells_dict[cell_type], dtype=np.int64)
    boundary_lines = np.asarray(mesh.cells_dict.get("line", np.empty((0, 2))), dtype=np.int64)
    boundary_tags = np.asarray(
        mesh.cell_data_dict.get("gmsh:physical", {}).get("line", []), dtype=np.int64
    )
    log.info("Loaded %d %s cells from %s", len(cells), cell_type, filename)

    return build_mesh_data(
        points,
        cells,
        boundary_lines,
        boundary_tags,
        physical_id_to_name=physical_names,
        boundary_conditions=boundary_conditions,
    )


def _tag_boundary_faces(
    edge_to_face, neighbor_cells, face_centers, boundary_lines, boundary_tags,
    physical_id_to_name, boundary_conditions, boundary_patches, boundary_types, boundary_values,
):
    """Assign patch tag, [velocity, pressure] BC codes and values to tagged boundary faces."""
    for i, line in enumerate(boundary_lines):
        face_id = edge_to_face.get((int(min(line)), int(max(line))))
        if face_id is None or neighbor_cells[face_id] >= 0:
            continue

        patch_tag = int(boundary_tags[i]) if i < len(boundary_tags) else -1
        patch_name = physical_id_to_name.get(patch_tag, f"UnnamedPatch_{patch_tag}")
        patch_config = boundary_conditions.get(patch_name, {})
        x_f = face_centers[face_id]

        velocity = patch_config.get("velocity", {})
        U_b = _evaluate_bc_value_at_face(velocity.get("value", [0.0, 0.0]), x_f, "velocity", patch_name)
        pressure = patch_config.get("pressure", {})
        p_b = _evaluate_bc_value_at_face(pressure.get("value", 0.0), x_f, "pressure", patch_name)

        boundary_patches[face_id] = patch_tag
        boundary_types[face_id] = [
            BC_TYPE_MAP.get(velocity.get("bc", "wall").lower(), BC_WALL),
            BC_TYPE_MAP.get(pressure.get("bc", "neumann").lower(), BC_NEUMANN),
        ]
        if np.ndim(U_b) == 0:
            boundary_values[face_id, 0] = U_b
        else:
            boundary_values[face_id, 0:2] = np.asarray(U_b, dtype=np.float64)[:2]
        boundary_values[face_id, 2] = p_b


def build_mesh_data(
    points,
    cells,
    boundary_lines,
    boundary_tags,
    physical_id_to_name,
    boundary_conditions,
):
    """
    Assemble MeshData2D from vertex coordinates, cell vertex lists and tagged
    boundary edges.
    """
    # --- Cells and faces ---
    n_cells = len(cells)
    cell_centers = np.mean(points[cells], axis=1)
    cell_volumes = _calculate_cell_volumes(points, cells)

    (
        edge_to_face,
        face_vertices,
        face_centers,
        vector_S_f,
        owner_cells,
        neighbor_cells,
    ) = _construct_faces(points, cells, cell_centers)

    face_areas = np.linalg.norm(vector_S_f, axis=1)
    n_faces = len(face_areas)
    unit_vector_n = vector_S_f / face_areas[:, None]

    internal_faces = np.where(neighbor_cells >= 0)[0].astype(np.int64)
    boundary_faces = np.where(neighbor_cells < 0)[0].astype(np.int64)

    # --- Non-orthogonal geometry ---
    vector_d_CE, unit_vector_e, face_interp_factors, d_Cb = _face_geometry_kernel(
        internal_faces, boundary_faces, owner_cells, neighbor_cells,
        cell_centers, face_centers, vector_S_f,
    )
    vector_E_f, vector_T_f = _over_relaxed_split(vector_S_f, unit_vector_e)
    cell_faces = _cell_faces_kernel(n_cells, owner_cells, neighbor_cells)

    # --- Boundary conditions ---
    boundary_patches = np.full(n_faces, -1, dtype=np.int64)
    boundary_types = np.full((n_faces, 2), -1, dtype=np.int64)
    boundary_values = np.zeros((n_faces, 3), dtype=np.float64)

    # Untagged boundary faces are no-slip walls with zero-gradient pressure
    boundary_types[boundary_faces] = [BC_WALL, BC_NEUMANN]
    _tag_boundary_faces(
        edge_to_face, neighbor_cells, face_centers, boundary_lines, boundary_tags,
        physical_id_to_name, boundary_conditions, boundary_patches, boundary_types, boundary_values,
    )
    log.debug("Built mesh with %d cells, %d faces (%d boundary)", n_cells, n_faces, len(boundary_faces))

    arrays = ensure_contiguous(
        cell_volumes, cell_centers, face_areas, face_centers,
        owner_cells, neighbor_cells, cell_faces,
        vector_S_f, vector_d_CE, unit_vector_n, unit_vector_e, vector_E_f, vector_T_f,
        face_interp_factors, internal_faces, boundary_faces, boundary_patches,
        boundary_types, boundary_values, d_Cb,
    )
    return MeshData2D(*arrays, patch_names=physical_id_to_name)
