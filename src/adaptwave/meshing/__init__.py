"""
adaptwave Meshing Module

This module provides the hierarchical quadrilateral mesh and its
constructors on box domains.
"""

from .quadtree import Cell, QuadMesh

from .cartesian import (
    StructuredQuadBox,
    HyperCube,
    boundaries_2D,
)

__all__ = [
    "Cell",
    "QuadMesh",
    # Cartesian meshes
    "StructuredQuadBox",
    "HyperCube",
    "boundaries_2D",
]
