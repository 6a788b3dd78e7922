r"""
Continuous bilinear (Q1) discretisation of a :class:`~adaptwave.meshing.QuadMesh`.

A :class:`Discretisation` is built from the active cells of a mesh and is
never modified afterwards. Whenever the mesh topology changes a new one is
built and tagged with the next *generation* number; field vectors carry no
mesh information of their own and are checked against the discretisation
they are used with (:meth:`Discretisation.check_vector`).

Operators
---------
Two pairs of PETSc AIJ matrices are provided:

- the full mass matrix :math:`M_{ij} = \int \phi_i \phi_j` and Laplace matrix
  :math:`A_{ij} = \int \nabla\phi_i \cdot \nabla\phi_j`, used for
  right-hand sides and energies;
- their hanging-node condensed versions :math:`C^T M C` and :math:`C^T A C`,
  used for the implicit systems. Constrained rows carry the mean diagonal so
  the systems stay symmetric positive definite.

Each pair shares one sparsity pattern so linear combinations can be formed
with ``Mat.axpy(..., SAME_NONZERO_PATTERN)``.
"""

import logging

import numpy as np
from petsc4py import PETSc

import adaptwave.timing as timing
from adaptwave.errors import InvalidStateSize
from adaptwave.utilities import aw_object
from adaptwave.meshing.quadtree import _FACE_OFFSET, _FACE_SAMPLES
from adaptwave.discretisation.constraints import HangingNodeConstraints

logger = logging.getLogger(__name__)

# Reference element matrices on the unit square, vertices counter-clockwise
# from the lower-left corner
_MASS_REF = (
    np.array(
        [
            [4.0, 2.0, 1.0, 2.0],
            [2.0, 4.0, 2.0, 1.0],
            [1.0, 2.0, 4.0, 2.0],
            [2.0, 1.0, 2.0, 4.0],
        ]
    )
    / 36.0
)

_LAPLACE_REF = (
    np.array(
        [
            [4.0, -1.0, -2.0, -1.0],
            [-1.0, 4.0, -1.0, -2.0],
            [-2.0, -1.0, 4.0, -1.0],
            [-1.0, -2.0, -1.0, 4.0],
        ]
    )
    / 6.0
)

# 2x2 Gauss rule on the unit square
_GAUSS_1D = np.array([0.5 - 0.5 / np.sqrt(3.0), 0.5 + 0.5 / np.sqrt(3.0)])
_GAUSS_POINTS = np.array([(xi, eta) for eta in _GAUSS_1D for xi in _GAUSS_1D])
_GAUSS_WEIGHTS = np.full(4, 0.25)


def shape_values(xi, eta):
    """Bilinear shape functions at local coordinates, shape (..., 4)"""
    xi = np.asarray(xi, dtype=float)
    eta = np.asarray(eta, dtype=float)
    return np.stack(
        [(1.0 - xi) * (1.0 - eta), xi * (1.0 - eta), xi * eta, (1.0 - xi) * eta],
        axis=-1,
    )


def shape_gradients(xi, eta):
    """Local-coordinate gradients of the shape functions, shape (..., 4, 2)"""
    xi = np.asarray(xi, dtype=float)
    eta = np.asarray(eta, dtype=float)
    d_xi = np.stack([-(1.0 - eta), 1.0 - eta, eta, -eta], axis=-1)
    d_eta = np.stack([-(1.0 - xi), -xi, xi, 1.0 - xi], axis=-1)
    return np.stack([d_xi, d_eta], axis=-1)


class _SparsityPattern:
    """CSR pattern of a list of (row, col) entries, duplicates summed."""

    def __init__(self, n, rows, cols):
        self.n = n
        keys = rows.astype(np.int64) * n + cols.astype(np.int64)
        unique_keys, self._inverse = np.unique(keys, return_inverse=True)

        self.indices = (unique_keys % n).astype(PETSc.IntType)
        row_counts = np.bincount(unique_keys // n, minlength=n)
        self.indptr = np.zeros(n + 1, dtype=PETSc.IntType)
        self.indptr[1:] = np.cumsum(row_counts)
        self.nnz = unique_keys.size

    def matrix(self, values):
        data = np.bincount(self._inverse.ravel(), weights=values, minlength=self.nnz)
        mat = PETSc.Mat().createAIJ(
            size=(self.n, self.n),
            csr=(self.indptr, self.indices, data.astype(PETSc.ScalarType)),
            comm=PETSc.COMM_SELF,
        )
        mat.assemble()
        return mat


class Discretisation(aw_object):
    r"""
    Bilinear finite elements on the active cells of a mesh.

    Parameters
    ----------
    mesh : QuadMesh
        The mesh. Only its current active cells are used; later topology
        changes of the mesh do not affect this object.
    generation : int
        Sequence number of this discretisation within a run.
    verbose : bool
        Print the number of cells and degrees of freedom.

    Degrees of freedom are the mesh vertices, numbered in order of first
    appearance in the depth-first traversal of the active cells, so the
    numbering is a deterministic function of the mesh topology.
    """

    @timing.routine_timer_decorator
    def __init__(self, mesh, generation=0, verbose=False):
        super().__init__()

        self.mesh = mesh
        self.generation = int(generation)
        self.verbose = verbose
        self._mesh_state = mesh._get_state()

        self.cells = list(mesh.active_cells())
        self.cell_levels = np.array([c.level for c in self.cells], dtype=int)
        self.cell_sizes = np.array([c.size for c in self.cells])
        self.cell_origins = np.array([(c.x0, c.y0) for c in self.cells])
        self._cell_index = {id(c): i for i, c in enumerate(self.cells)}

        self._number_vertices()
        self._find_face_neighbours()

        self.constraints = HangingNodeConstraints.from_cells(
            self.cells,
            self.cell_dofs,
            self.face_neighbours,
            self.dof_of_point,
            self.n_dofs,
        )

        self._mass = None
        self._laplace = None
        self._condensed_mass = None
        self._condensed_laplace = None

        logger.debug(
            "Discretisation generation %d: %d cells, %d dofs, %d hanging nodes",
            self.generation,
            self.n_active_cells,
            self.n_dofs,
            self.constraints.n_constraints,
        )

        if self.verbose:
            self._print_statistics()

    @classmethod
    def build(cls, mesh, generation=0, verbose=False):
        return cls(mesh, generation=generation, verbose=verbose)

    ## Topology

    def _lattice_key(self, x, y):
        return (
            int(round((x - self._origin[0]) / self._unit)),
            int(round((y - self._origin[1]) / self._unit)),
        )

    def _number_vertices(self):
        self._origin = self.mesh.minCoords
        self._unit = self.cells[0].size * 2.0 ** (self.cells[0].level - int(self.cell_levels.max()) - 1)

        numbering = {}
        coords = []
        cell_dofs = np.empty((len(self.cells), 4), dtype=int)

        for i, cell in enumerate(self.cells):
            for a, (x, y) in enumerate(cell.vertices):
                key = self._lattice_key(x, y)
                dof = numbering.get(key)
                if dof is None:
                    dof = len(coords)
                    numbering[key] = dof
                    coords.append((x, y))
                cell_dofs[i, a] = dof

        self._numbering = numbering
        self.cell_dofs = cell_dofs
        self.coords = np.array(coords, dtype=float)

    def dof_of_point(self, x, y):
        """The dof at vertex (x, y), or None if no vertex is there"""
        return self._numbering.get(self._lattice_key(x, y))

    def _find_face_neighbours(self):
        table = np.full((len(self.cells), 4, 2), -1, dtype=int)
        for i, cell in enumerate(self.cells):
            for side in range(4):
                for s, tau in enumerate(_FACE_SAMPLES):
                    neighbour = self.mesh.locate(*cell.side_point(side, tau, offset=_FACE_OFFSET))
                    if neighbour is not None:
                        table[i, side, s] = self._cell_index[id(neighbour)]
        self.face_neighbours = table

    def cell_index(self, cell):
        return self._cell_index.get(id(cell))

    @property
    def n_dofs(self):
        return self.coords.shape[0]

    @property
    def n_active_cells(self):
        return len(self.cells)

    def is_current(self):
        """Whether the mesh has not changed since this object was built"""
        return self.mesh._get_state() == self._mesh_state

    def check_vector(self, name, array):
        """Raise :class:`InvalidStateSize` unless `array` has one entry per dof"""
        size = np.shape(array)[0]
        if size != self.n_dofs:
            raise InvalidStateSize(name, size, self.n_dofs, generation=self.generation)
        return array

    def boundary_dofs(self, boundary_id=None):
        return np.flatnonzero(self.mesh.boundary_mask(self.coords, boundary_id))

    ## Operators

    def _element_entries(self):
        rows = np.repeat(self.cell_dofs[:, :, None], 4, axis=2)
        cols = np.repeat(self.cell_dofs[:, None, :], 4, axis=1)
        mass = (self.cell_sizes**2)[:, None, None] * _MASS_REF[None, :, :]
        laplace = np.broadcast_to(_LAPLACE_REF, mass.shape)
        return rows, cols, mass, laplace

    @timing.routine_timer_decorator
    def _assemble_full(self):
        rows, cols, mass, laplace = self._element_entries()
        pattern = _SparsityPattern(self.n_dofs, rows.ravel(), cols.ravel())
        self._mass = pattern.matrix(mass.ravel())
        self._laplace = pattern.matrix(laplace.ravel())

    @timing.routine_timer_decorator
    def _assemble_condensed(self):
        constraints = self.constraints
        if constraints.n_constraints == 0:
            self._condensed_mass = self.mass_matrix
            self._condensed_laplace = self.laplace_matrix
            return

        rows, cols, mass, laplace = self._element_entries()
        masters = constraints.expansion_masters[self.cell_dofs]
        weights = constraints.expansion_weights[self.cell_dofs]
        n_cells, _, width = masters.shape

        # Entry (cell, a, i, b, j): row master i of vertex a, column master j of vertex b
        crow = np.broadcast_to(masters[:, :, :, None, None], (n_cells, 4, width, 4, width))
        ccol = np.broadcast_to(masters[:, None, None, :, :], (n_cells, 4, width, 4, width))
        w = weights[:, :, :, None, None] * weights[:, None, None, :, :]
        keep = w != 0.0

        crow = crow[keep]
        ccol = ccol[keep]
        cmass = (w * mass[:, :, None, :, None])[keep]
        claplace = (w * laplace[:, :, None, :, None])[keep]

        constrained = constraints.constrained_dofs
        free = ~constraints.is_constrained

        def mean_diagonal(values):
            on_diagonal = crow == ccol
            diagonal = np.bincount(crow[on_diagonal], weights=values[on_diagonal], minlength=self.n_dofs)
            return diagonal[free].mean()

        pattern = _SparsityPattern(
            self.n_dofs,
            np.concatenate([crow, constrained]),
            np.concatenate([ccol, constrained]),
        )

        fill = np.ones(constrained.size)
        self._condensed_mass = pattern.matrix(np.concatenate([cmass, mean_diagonal(cmass) * fill]))
        self._condensed_laplace = pattern.matrix(
            np.concatenate([claplace, mean_diagonal(claplace) * fill])
        )

    @property
    def mass_matrix(self):
        if self._mass is None:
            self._assemble_full()
        return self._mass

    @property
    def laplace_matrix(self):
        if self._laplace is None:
            self._assemble_full()
        return self._laplace

    @property
    def condensed_mass_matrix(self):
        if self._condensed_mass is None:
            self._assemble_condensed()
        return self._condensed_mass

    @property
    def condensed_laplace_matrix(self):
        if self._condensed_laplace is None:
            self._assemble_condensed()
        return self._condensed_laplace

    def assemble_mass(self):
        return self.mass_matrix

    def assemble_stiffness(self):
        return self.laplace_matrix

    @timing.routine_timer_decorator
    def assemble_forcing(self, fn, time):
        r"""
        Load vector :math:`F_i = \int f(x, t) \phi_i` with a 2x2 Gauss rule
        on every cell.
        """
        h = self.cell_sizes
        points = self.cell_origins[:, None, :] + h[:, None, None] * _GAUSS_POINTS[None, :, :]
        f = fn.evaluate(points.reshape(-1, 2), time).reshape(-1, 4)

        phi = shape_values(_GAUSS_POINTS[:, 0], _GAUSS_POINTS[:, 1])
        local = (h**2)[:, None] * np.einsum("q,cq,qa->ca", _GAUSS_WEIGHTS, f, phi)
        return np.bincount(self.cell_dofs.ravel(), weights=local.ravel(), minlength=self.n_dofs)

    ## Fields

    def zero_vector(self):
        return np.zeros(self.n_dofs)

    def interpolate(self, fn, time):
        """Nodal interpolation of `fn` at `time`, hanging nodes made conforming"""
        values = np.array(fn.evaluate(self.coords, time), dtype=float)
        return self.constraints.distribute(values)

    def boundary_values(self, fn, time, boundary_id=None):
        """``{dof: value}`` for the dofs on boundary `boundary_id` (None: all)"""
        dofs = self.boundary_dofs(boundary_id)
        values = fn.evaluate(self.coords[dofs], time)
        return {int(d): float(v) for d, v in zip(dofs, values)}

    def gradient(self, u, cell_indices, points):
        """
        Gradient of the field `u` at physical `points` (..., 2), evaluated
        with the shape functions of the cells `cell_indices` (...).
        """
        cell_indices = np.asarray(cell_indices, dtype=int)
        points = np.asarray(points, dtype=float)

        h = self.cell_sizes[cell_indices]
        local = (points - self.cell_origins[cell_indices]) / h[..., None]
        dphi = shape_gradients(local[..., 0], local[..., 1])
        nodal = u[self.cell_dofs[cell_indices]]
        return np.einsum("...a,...ad->...d", nodal, dphi) / h[..., None]

    def corner_values(self, u):
        """Values of `u` at the four corners of every active cell, (n_cells, 4)"""
        return u[self.cell_dofs]

    def _print_statistics(self):
        from adaptwave.mpi import pprint

        pprint(f"Number of active cells: {self.n_active_cells}")
        pprint(f"Number of degrees of freedom: {self.n_dofs}")

    def _object_viewer(self):
        from adaptwave.mpi import pprint

        pprint(f"Generation: {self.generation}")
        self._print_statistics()
        pprint(f"Hanging nodes: {self.constraints.n_constraints}")


class BoundaryValues:
    """
    Dirichlet data of one field on a discretisation.

    ``values_at(time, boundary_id)`` returns ``{dof: value}`` for the
    boundary dofs; `fn` is evaluated afresh at every call, so the provider
    holds no time of its own.
    """

    def __init__(self, discretisation, fn):
        self.discretisation = discretisation
        self.fn = fn

    def values_at(self, time, boundary_id=None):
        return self.discretisation.boundary_values(self.fn, time, boundary_id)
