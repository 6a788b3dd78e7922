"""
Cartesian mesh constructors for adaptwave.

This module contains constructors for hierarchical quadrilateral meshes
on rectangular box domains.
"""

from typing import Optional, Tuple
from enum import Enum

import adaptwave.timing as timing
from adaptwave.meshing.quadtree import QuadMesh


class boundaries_2D(Enum):
    Bottom = 11
    Top = 12
    Right = 13
    Left = 14


@timing.routine_timer_decorator
def StructuredQuadBox(
    elementRes: Tuple = (1, 1),
    minCoords: Tuple = (0.0, 0.0),
    maxCoords: Tuple = (1.0, 1.0),
    refinement: Optional[int] = None,
    verbose=False,
):
    r"""
    Create a hierarchical quadrilateral mesh on a rectangular box domain.

    Parameters
    ----------
    elementRes : tuple of int
        Number of root cells ``(n_x, n_y)``. The root cells must be square,
        so the box aspect ratio has to match ``n_x / n_y``.
    minCoords : tuple of float
        Minimum corner coordinates ``(x_min, y_min)``.
    maxCoords : tuple of float
        Maximum corner coordinates ``(x_max, y_max)``.
    refinement : int, optional
        Number of uniform refinement levels to apply after construction.
        Each level quadruples the number of cells.
    verbose : bool, default=False
        If True, print mesh statistics after every topology change.

    Returns
    -------
    QuadMesh
        A mesh with the following boundaries defined
        (accessible via ``mesh.boundaries``):

        - ``Bottom``: :math:`y = y_{min}` edge
        - ``Top``: :math:`y = y_{max}` edge
        - ``Right``: :math:`x = x_{max}` edge
        - ``Left``: :math:`x = x_{min}` edge

    Examples
    --------
    >>> import adaptwave as aw
    >>> mesh = aw.meshing.StructuredQuadBox(
    ...     elementRes=(2, 1),
    ...     minCoords=(0.0, 0.0),
    ...     maxCoords=(2.0, 1.0),
    ...     refinement=3,
    ... )
    >>> mesh.n_active_cells
    128
    """

    mesh = QuadMesh(
        minCoords=minCoords,
        maxCoords=maxCoords,
        elementRes=elementRes,
        boundaries=boundaries_2D,
        verbose=verbose,
    )

    if refinement:
        mesh.refine_global(refinement)

    return mesh


def HyperCube(left: float = -1.0, right: float = 1.0, refinement: Optional[int] = None, verbose=False):
    r"""
    The square :math:`[left, right]^2` as a single root cell, optionally
    refined ``refinement`` times.
    """

    return StructuredQuadBox(
        elementRes=(1, 1),
        minCoords=(left, left),
        maxCoords=(right, right),
        refinement=refinement,
        verbose=verbose,
    )
