r"""
Hierarchical quadrilateral meshes.

A :class:`QuadMesh` is a forest of square root cells. Each cell can be
split into four children (SW, SE, NW, NE); the active cells are the
leaves of the forest. Refinement and coarsening are requested through
per-cell flags and carried out in two stages, the way adaptive
finite-element codes usually do it:

1. :meth:`QuadMesh.prepare_coarsening_and_refinement` makes the flags
   consistent. Neighbouring active cells may differ by at most one level
   across a face (one hanging node per face), so refinement propagates to
   coarser neighbours and coarsening is withdrawn where it would break
   that rule.
2. :meth:`QuadMesh.execute_coarsening_and_refinement` changes the
   topology and bumps the mesh state.

Sides of a cell are numbered 0 (left), 1 (right), 2 (bottom) and 3 (top);
corners counter-clockwise from the lower-left one.
"""

import logging
from enum import Enum
from typing import Optional, Tuple

import numpy as np

import adaptwave.timing as timing
from adaptwave.utilities import Stateful, aw_object

logger = logging.getLogger(__name__)

SIDE_NORMALS = ((-1.0, 0.0), (1.0, 0.0), (0.0, -1.0), (0.0, 1.0))

# Points used to find the cells across a face, as a fraction of the cell size
_FACE_SAMPLES = (0.25, 0.75)
_FACE_OFFSET = 1.0e-3


class Cell:
    """A square cell of a :class:`QuadMesh`."""

    __slots__ = (
        "level",
        "x0",
        "y0",
        "size",
        "parent",
        "children",
        "refine_flag",
        "coarsen_flag",
    )

    def __init__(self, x0, y0, size, level=0, parent=None):
        self.x0 = x0
        self.y0 = y0
        self.size = size
        self.level = level
        self.parent = parent
        self.children = None
        self.refine_flag = False
        self.coarsen_flag = False

    def __repr__(self):
        return f"Cell(level={self.level}, origin=({self.x0:g}, {self.y0:g}), size={self.size:g})"

    @property
    def active(self):
        return self.children is None

    @property
    def vertices(self):
        """Corner coordinates, counter-clockwise from the lower-left corner"""
        x0, y0, h = self.x0, self.y0, self.size
        return ((x0, y0), (x0 + h, y0), (x0 + h, y0 + h), (x0, y0 + h))

    def side_point(self, side, tau, offset=0.0):
        """
        Point at fraction `tau` along `side`, moved by `offset` cell sizes
        along the outward normal.
        """
        h = self.size
        if side == 0:
            return (self.x0 - offset * h, self.y0 + tau * h)
        elif side == 1:
            return (self.x0 + h + offset * h, self.y0 + tau * h)
        elif side == 2:
            return (self.x0 + tau * h, self.y0 - offset * h)
        elif side == 3:
            return (self.x0 + tau * h, self.y0 + h + offset * h)
        raise ValueError(f"Cell side must be 0, 1, 2 or 3, got {side}")

    def child_containing(self, x, y):
        half = 0.5 * self.size
        i = 1 if x >= self.x0 + half else 0
        j = 1 if y >= self.y0 + half else 0
        return self.children[2 * j + i]

    def _refine(self):
        half = 0.5 * self.size
        self.children = [
            Cell(self.x0 + i * half, self.y0 + j * half, half, self.level + 1, parent=self)
            for j in (0, 1)
            for i in (0, 1)
        ]
        self.refine_flag = False
        self.coarsen_flag = False


class QuadMesh(Stateful, aw_object):
    r"""
    Hierarchical mesh of square cells on an axis-aligned box.

    Parameters
    ----------
    minCoords, maxCoords :
        Corners of the box.
    elementRes :
        Number of root cells in each direction. The root cells must be square.
    boundaries :
        Enum of boundary labels (``Bottom``, ``Top``, ``Right``, ``Left``).
    verbose :
        Print mesh statistics after every topology change.

    The mesh state (see :class:`~adaptwave.utilities.Stateful`) increases
    with every topology change.
    """

    def __init__(
        self,
        minCoords: Tuple = (0.0, 0.0),
        maxCoords: Tuple = (1.0, 1.0),
        elementRes: Tuple = (1, 1),
        boundaries=None,
        verbose=False,
    ):
        super().__init__()

        self.minCoords = tuple(float(v) for v in minCoords)
        self.maxCoords = tuple(float(v) for v in maxCoords)
        self.elementRes = tuple(int(v) for v in elementRes)
        self.boundaries = boundaries
        self.verbose = verbose

        nx, ny = self.elementRes
        if nx < 1 or ny < 1:
            raise ValueError(f"elementRes must be positive, got {self.elementRes}")

        hx = (self.maxCoords[0] - self.minCoords[0]) / nx
        hy = (self.maxCoords[1] - self.minCoords[1]) / ny
        if hx <= 0.0 or hy <= 0.0:
            raise ValueError(
                f"maxCoords {self.maxCoords} must exceed minCoords {self.minCoords} in every direction"
            )
        if not np.isclose(hx, hy, rtol=1.0e-12):
            raise ValueError(f"Root cells must be square, got {hx:g} x {hy:g}")

        self._root_size = hx
        self.roots = [
            Cell(self.minCoords[0] + i * hx, self.minCoords[1] + j * hx, hx)
            for j in range(ny)
            for i in range(nx)
        ]

    @property
    def generation(self):
        """Number of topology changes the mesh has been through"""
        return self._get_state()

    def active_cells(self):
        """Active cells in depth-first order (children SW, SE, NW, NE)"""
        for root in self.roots:
            yield from self._leaves(root)

    @staticmethod
    def _leaves(cell):
        if cell.children is None:
            yield cell
        else:
            for child in cell.children:
                yield from QuadMesh._leaves(child)

    @property
    def n_active_cells(self):
        return sum(1 for _ in self.active_cells())

    def active_levels(self):
        return np.array([cell.level for cell in self.active_cells()], dtype=int)

    @property
    def n_levels(self):
        """One more than the finest level present"""
        return int(self.active_levels().max()) + 1

    def locate(self, x, y) -> Optional[Cell]:
        """The active cell containing the point (x, y), or None outside the domain"""
        (xmin, ymin), (xmax, ymax) = self.minCoords, self.maxCoords
        if x < xmin or x > xmax or y < ymin or y > ymax:
            return None

        nx, ny = self.elementRes
        i = min(int((x - xmin) / self._root_size), nx - 1)
        j = min(int((y - ymin) / self._root_size), ny - 1)

        cell = self.roots[j * nx + i]
        while cell.children is not None:
            cell = cell.child_containing(x, y)
        return cell

    def face_neighbours(self, cell, side):
        """Active cells across `side` of `cell` (empty on the domain boundary)"""
        found = []
        for tau in _FACE_SAMPLES:
            neighbour = self.locate(*cell.side_point(side, tau, offset=_FACE_OFFSET))
            if neighbour is not None and neighbour not in found:
                found.append(neighbour)
        return found

    def boundary_mask(self, coords, boundary=None):
        """
        Which of the points in `coords` (N x 2) lie on the boundary labelled
        `boundary`. `None` selects the whole boundary.
        """
        coords = np.asarray(coords, dtype=float)
        x, y = coords[:, 0], coords[:, 1]
        atol = 1.0e-12 * max(self.maxCoords[0] - self.minCoords[0], self.maxCoords[1] - self.minCoords[1])

        sides = {
            "Bottom": np.isclose(y, self.minCoords[1], rtol=0.0, atol=atol),
            "Top": np.isclose(y, self.maxCoords[1], rtol=0.0, atol=atol),
            "Right": np.isclose(x, self.maxCoords[0], rtol=0.0, atol=atol),
            "Left": np.isclose(x, self.minCoords[0], rtol=0.0, atol=atol),
        }

        if boundary is None:
            return sides["Bottom"] | sides["Top"] | sides["Right"] | sides["Left"]

        name = boundary.name if isinstance(boundary, Enum) else str(boundary)
        if name not in sides:
            raise ValueError(f"Unknown boundary '{name}', expected one of {list(sides.keys())}")
        return sides[name]

    @timing.routine_timer_decorator
    def refine_global(self, times=1):
        """Refine every active cell `times` times"""
        for _ in range(times):
            for cell in list(self.active_cells()):
                cell._refine()
            self._increment()

        if self.verbose:
            self._print_statistics()

    def clear_flags(self):
        for cell in self.active_cells():
            cell.refine_flag = False
            cell.coarsen_flag = False

    def coarsening_groups(self):
        """
        Parents whose four children are all active and flagged for
        coarsening (and none for refinement).
        """
        groups = []
        seen = set()
        for cell in self.active_cells():
            parent = cell.parent
            if not cell.coarsen_flag or parent is None or id(parent) in seen:
                continue
            seen.add(id(parent))
            if all(
                child.active and child.coarsen_flag and not child.refine_flag
                for child in parent.children
            ):
                groups.append(parent)
        return groups

    def _may_coarsen(self, parent):
        siblings = parent.children
        for child in siblings:
            for side in range(4):
                for neighbour in self.face_neighbours(child, side):
                    if any(neighbour is s for s in siblings):
                        continue
                    if neighbour.level > child.level:
                        return False
                    if neighbour.level == child.level and neighbour.refine_flag:
                        return False
        return True

    @timing.routine_timer_decorator
    def prepare_coarsening_and_refinement(self):
        """
        Make the refine / coarsen flags consistent with the one-level
        difference rule across faces.
        """
        active = list(self.active_cells())

        for cell in active:
            if cell.refine_flag:
                cell.coarsen_flag = False

        queue = [cell for cell in active if cell.refine_flag]
        n_propagated = 0
        while queue:
            cell = queue.pop()
            for side in range(4):
                for neighbour in self.face_neighbours(cell, side):
                    if neighbour.level < cell.level and not neighbour.refine_flag:
                        neighbour.refine_flag = True
                        neighbour.coarsen_flag = False
                        queue.append(neighbour)
                        n_propagated += 1

        groups = self.coarsening_groups()
        grouped = set(id(child) for parent in groups for child in parent.children)
        for cell in active:
            if cell.coarsen_flag and id(cell) not in grouped:
                cell.coarsen_flag = False

        n_withdrawn = 0
        for parent in groups:
            if not self._may_coarsen(parent):
                for child in parent.children:
                    child.coarsen_flag = False
                n_withdrawn += 1

        logger.debug(
            "prepare_coarsening_and_refinement: %d refinements added, %d coarsenings withdrawn",
            n_propagated,
            n_withdrawn,
        )

    @timing.routine_timer_decorator
    def execute_coarsening_and_refinement(self):
        """
        Carry out the flagged refinement and coarsening.

        Returns
        -------
        bool
            Whether the topology changed.
        """
        groups = self.coarsening_groups()
        refined = [cell for cell in self.active_cells() if cell.refine_flag]

        for parent in groups:
            parent.children = None
            parent.refine_flag = False
            parent.coarsen_flag = False

        for cell in refined:
            cell._refine()

        self.clear_flags()

        changed = bool(groups or refined)
        if changed:
            self._increment()

        if self.verbose:
            self._print_statistics()

        return changed

    def _print_statistics(self):
        from adaptwave.mpi import pprint

        levels = self.active_levels()
        pprint(f"Number of active cells: {levels.size}")
        pprint(f"Active cell levels: {levels.min()} .. {levels.max()}")

    def _object_viewer(self):
        from adaptwave.mpi import pprint

        pprint(f"Domain: {self.minCoords} - {self.maxCoords}, root cells {self.elementRes}")
        self._print_statistics()
