"""
Mesh module for the ParcelFlow collocated solver.

Provides mesh generation, loading and the static geometry container used
by the finite volume operators.
"""

from .mesh_data import MeshData2D
from .structured_uniform import generate as generate_structured_uniform
from .mesh_loader import load_mesh, build_mesh_data

__all__ = [
    "MeshData2D",
    "generate_structured_uniform",
    "load_mesh",
    "build_mesh_data",
]
