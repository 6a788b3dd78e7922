r"""
Hanging-node constraints for continuous bilinear elements.

Where a coarse cell meets two finer cells across a face, the vertex at the
middle of that face (a *hanging node*) does not belong to the coarse cell.
Continuity of the field requires its value to be the average of the two
face end points:

.. math::

    u_h = \tfrac{1}{2} (u_a + u_b)

With graded meshes an end point can itself be a hanging node of a coarser
face, so the raw constraints are *closed*: every constraint is rewritten
until it refers only to unconstrained degrees of freedom.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

# Local vertex numbers at the ends of each cell side (0 left, 1 right, 2 bottom, 3 top)
SIDE_VERTICES = ((0, 3), (1, 2), (0, 1), (3, 2))


class HangingNodeConstraints:
    """
    Closed set of constraints ``x[c] = sum_m w_cm x[m]``.

    Parameters
    ----------
    n_dofs : int
        Number of degrees of freedom.
    lines : dict
        ``{constrained_dof: [(master_dof, weight), ...]}``. Masters may be
        constrained themselves; the chains are resolved on construction.
    """

    def __init__(self, n_dofs, lines=None):
        self.n_dofs = int(n_dofs)
        self._lines = self._close(dict(lines or {}))

        constrained = np.array(sorted(self._lines.keys()), dtype=int)
        self.constrained_dofs = constrained
        self.is_constrained = np.zeros(self.n_dofs, dtype=bool)
        self.is_constrained[constrained] = True

        self._build_expansion()

    @classmethod
    def from_cells(cls, cells, cell_dofs, face_neighbours, dof_of_point, n_dofs):
        """
        Find the hanging nodes of the active `cells`.

        `face_neighbours[i, side]` holds the indices of the cells found
        across each half of a side (-1 outside the domain) and
        `dof_of_point(x, y)` returns the dof number of a vertex or None.
        """
        lines = {}
        for index, cell in enumerate(cells):
            for side in range(4):
                first, second = face_neighbours[index, side]
                if first < 0 or first == second:
                    continue

                # Two finer cells across this side: its midpoint hangs
                a, b = SIDE_VERTICES[side]
                dof_a = int(cell_dofs[index, a])
                dof_b = int(cell_dofs[index, b])
                hanging = dof_of_point(*cell.side_point(side, 0.5))
                if hanging is None:
                    raise RuntimeError(f"Missing vertex at the middle of side {side} of {cell}")
                lines[hanging] = [(dof_a, 0.5), (dof_b, 0.5)]

        return cls(n_dofs, lines)

    @staticmethod
    def _close(lines):
        closed = {}

        def resolve(dof, stack):
            if dof in closed:
                return closed[dof]
            if dof in stack:
                raise RuntimeError(f"Cyclic hanging-node constraint through dof {dof}")

            stack.add(dof)
            expanded = {}
            for master, weight in lines[dof]:
                if master in lines:
                    for m, w in resolve(master, stack):
                        expanded[m] = expanded.get(m, 0.0) + weight * w
                else:
                    expanded[master] = expanded.get(master, 0.0) + weight
            stack.discard(dof)

            closed[dof] = sorted(expanded.items())
            return closed[dof]

        for dof in lines:
            resolve(dof, set())

        return closed

    def _build_expansion(self):
        # Padded table: row i lists the unconstrained dofs that dof i depends on
        width = max([1] + [len(masters) for masters in self._lines.values()])

        masters = np.repeat(np.arange(self.n_dofs)[:, None], width, axis=1)
        weights = np.zeros((self.n_dofs, width))
        weights[:, 0] = 1.0

        for dof, line in self._lines.items():
            weights[dof, :] = 0.0
            for j, (m, w) in enumerate(line):
                masters[dof, j] = m
                weights[dof, j] = w

        self.expansion_masters = masters
        self.expansion_weights = weights

    def __len__(self):
        return len(self._lines)

    def __contains__(self, dof):
        return dof in self._lines

    def __getitem__(self, dof):
        return list(self._lines[dof])

    @property
    def n_constraints(self):
        return len(self._lines)

    def distribute(self, x):
        """Set the constrained entries of `x` (in place) from their masters."""
        if not self._lines:
            return x
        c = self.constrained_dofs
        x[c] = np.einsum("ij,ij->i", self.expansion_weights[c], x[self.expansion_masters[c]])
        return x

    def condense(self, b):
        """
        Fold the constrained entries of the right-hand side `b` into their
        masters, in place; the constrained entries become zero.
        """
        if not self._lines:
            return b
        c = self.constrained_dofs
        contributions = b[c][:, None] * self.expansion_weights[c]
        b[c] = 0.0
        np.add.at(b, self.expansion_masters[c].ravel(), contributions.ravel())
        return b

    def is_consistent(self, x, atol=1.0e-12):
        """Whether `x` already satisfies the constraints"""
        if not self._lines:
            return True
        c = self.constrained_dofs
        expected = np.einsum("ij,ij->i", self.expansion_weights[c], x[self.expansion_masters[c]])
        return bool(np.allclose(x[c], expected, rtol=0.0, atol=atol))
