"""
MeshData2D: Core data layout for finite volume CFD (2D, collocated).

This class defines static geometry, connectivity, boundary tagging, and precomputed metrics,
following Moukalled's finite volume formulation. A unit depth is assumed, so face "areas"
are edge lengths and cell "volumes" are polygon areas.

Indexing Conventions:
- All face-based arrays (e.g., vector_S_f, owner_cells) use face indexing (0 to n_faces-1).
- All cell-based arrays (e.g., cell_volumes, cell_centers) use cell indexing (0 to n_cells-1).
- Boundary-related arrays (e.g., boundary_values, boundary_types, d_Cb) have full-face length (n_faces).
    * Internal faces use sentinel defaults: boundary_types = [-1, -1], boundary_values = [0, 0, 0], d_Cb = 0.0

Orientation:
- vector_S_f points from owner to neighbour on internal faces and out of the domain on boundary faces.
- A positive face flux therefore leaves the owner cell.

Boundary Condition Metadata:
- boundary_values[f, :] = [u_BC, v_BC, p_rgh_BC] for face f. Zero for internal.
- boundary_types[f, :] = [vel_type, p_type] with:
    * 0 = Wall
    * 1 = Dirichlet (fixed value)
    * 2 = Inlet
    * 3 = Outlet
    * 4 = Neumann (zero gradient)
"""

import numpy as np


class MeshData2D:
    def __init__(
        self,
        cell_volumes,
        cell_centers,
        face_areas,
        face_centers,
        owner_cells,
        neighbor_cells,
        cell_faces,
        vector_S_f,
        vector_d_CE,
        unit_vector_n,
        unit_vector_e,
        vector_E_f,
        vector_T_f,
        face_interp_factors,
        internal_faces,
        boundary_faces,
        boundary_patches,
        boundary_types,
        boundary_values,
        d_Cb,
        patch_names=None,
    ):
        # --- Geometry ---
        self.cell_volumes = cell_volumes
        self.cell_centers = cell_centers
        self.face_areas = face_areas
        self.face_centers = face_centers

        # --- Connectivity ---
        self.owner_cells = owner_cells
        self.neighbor_cells = neighbor_cells
        self.cell_faces = cell_faces

        # --- Vector Geometry --- over-relaxed decomposition S_f = E_f + T_f (Moukalled 8.6.4)
        self.vector_S_f = vector_S_f
        self.vector_d_CE = vector_d_CE
        self.unit_vector_n = unit_vector_n
        self.unit_vector_e = unit_vector_e
        self.vector_E_f = vector_E_f
        self.vector_T_f = vector_T_f

        # --- Interpolation Factors ---
        self.face_interp_factors = face_interp_factors

        # --- Topological Info ---
        self.internal_faces = internal_faces
        self.boundary_faces = boundary_faces
        self.boundary_patches = boundary_patches
        self.patch_names = dict(patch_names or {})

        # --- BCs ---
        self.boundary_types = boundary_types
        self.boundary_values = boundary_values
        self.d_Cb = d_Cb

    def __repr__(self):
        return f"<{self.__class__.__name__}: {self.n_cells} cells, {self.n_faces} faces>"

    @property
    def n_cells(self):
        return self.cell_volumes.shape[0]

    @property
    def n_faces(self):
        return self.face_areas.shape[0]

    def patch_faces(self, name):
        """Return the boundary face indices belonging to the named patch."""
        tags = [tag for tag, patch in self.patch_names.items() if patch == name]
        if not tags:
            raise KeyError(f"Unknown boundary patch '{name}'")
        return np.where(np.isin(self.boundary_patches, tags))[0]
