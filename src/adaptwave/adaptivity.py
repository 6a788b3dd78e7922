from typing import Optional

import dataclasses
import logging

import numpy as np

import adaptwave.timing as timing
from adaptwave.errors import AdaptWaveError, RefinementBoundsViolated
from adaptwave.discretisation import Discretisation
from adaptwave.discretisation.discretisation import shape_values
from adaptwave.error_estimator import KellyErrorEstimator
from adaptwave.utilities._api_tools import aw_object

logger = logging.getLogger(__name__)


# Utilities for mesh adaptation and for carrying fields across it

# Corner k of a parent cell coincides with corner k of child PARENT_CORNER_CHILD[k]
# (children are stored SW, SE, NW, NE; corners counter-clockwise from SW)
PARENT_CORNER_CHILD = (0, 1, 3, 2)


def fixed_fraction_marking(indicators, refine_fraction, coarsen_fraction):
    r"""
    Select cells for refinement and coarsening by fixed fractions of the
    total indicator.

    The refinement set is the smallest set of cells, taken in descending
    order of indicator, whose indicators sum to at least
    ``refine_fraction * total``; the coarsening set is the smallest set,
    taken in ascending order, reaching ``coarsen_fraction * total``. A
    fraction of zero (or a zero total) selects nothing. A cell in both sets
    is refined only.

    Returns
    -------
    refine, coarsen : numpy.ndarray of bool
    """
    indicators = np.asarray(indicators, dtype=float)
    n = indicators.size
    refine = np.zeros(n, dtype=bool)
    coarsen = np.zeros(n, dtype=bool)

    if n == 0:
        return refine, coarsen
    if np.any(indicators < 0.0) or not np.all(np.isfinite(indicators)):
        raise ValueError("Error indicators must be finite and non-negative")

    def smallest_prefix(order, fraction):
        if fraction <= 0.0:
            return order[:0]
        cumulative = np.cumsum(indicators[order])
        total = cumulative[-1]
        if total <= 0.0:
            return order[:0]
        count = int(np.searchsorted(cumulative, fraction * total, side="left")) + 1
        return order[: min(count, n)]

    descending = np.argsort(-indicators, kind="stable")
    ascending = np.argsort(indicators, kind="stable")

    refine[smallest_prefix(descending, refine_fraction)] = True
    coarsen[smallest_prefix(ascending, coarsen_fraction)] = True
    coarsen[refine] = False

    return refine, coarsen


def clamp_refinement_flags(mesh, min_level, max_level):
    """
    Clear refinement flags on cells at or above `max_level` and coarsening
    flags on cells at or below `min_level`.
    """
    n_cleared = 0
    for cell in mesh.active_cells():
        if cell.refine_flag and cell.level >= max_level:
            cell.refine_flag = False
            n_cleared += 1
        if cell.coarsen_flag and cell.level <= min_level:
            cell.coarsen_flag = False
            n_cleared += 1
    return n_cleared


def check_refinement_bounds(mesh, min_level, max_level):
    levels = mesh.active_levels()
    observed_min, observed_max = int(levels.min()), int(levels.max())
    if observed_min < min_level or observed_max > max_level:
        raise RefinementBoundsViolated(min_level, max_level, observed_min, observed_max)


class SolutionTransfer:
    r"""
    Carries vertex fields through a refinement / coarsening of the mesh.

    Usage follows the mesh change:

    >>> transfer = SolutionTransfer(discretisation)
    >>> transfer.prepare_for_coarsening_and_refinement([U, V])
    >>> mesh.execute_coarsening_and_refinement()
    >>> U_new, V_new = transfer.interpolate(Discretisation(mesh, generation=1))

    The fields are captured cell by cell before the change. Afterwards,
    cells that existed before take their own values, new children are
    interpolated from their parent, and re-created parents take the values
    injected from the corners of their former children. Hanging-node
    constraints of the new discretisation are not applied here.
    """

    def __init__(self, discretisation):
        self.discretisation = discretisation
        self._cell_values = None
        self.n_fields = 0

    @timing.routine_timer_decorator
    def prepare_for_coarsening_and_refinement(self, fields):
        """Capture `fields` (a list of vectors); call once the mesh flags are final."""
        old = self.discretisation
        if not old.is_current():
            raise AdaptWaveError("Fields must be captured before the mesh is changed")

        for i, values in enumerate(fields):
            old.check_vector(f"field {i}", values)

        corner_values = np.stack([old.corner_values(np.asarray(v)) for v in fields], axis=1)
        self.n_fields = len(fields)
        self._cell_values = {cell: corner_values[i] for i, cell in enumerate(old.cells)}

        for parent in old.mesh.coarsening_groups():
            injected = np.empty((self.n_fields, 4))
            for corner, child in enumerate(PARENT_CORNER_CHILD):
                injected[:, corner] = self._cell_values[parent.children[child]][:, corner]
            self._cell_values[parent] = injected

    @timing.routine_timer_decorator
    def interpolate(self, discretisation):
        """The captured fields on `discretisation`, as a list of vectors"""
        if self._cell_values is None:
            raise AdaptWaveError("SolutionTransfer.interpolate called before the fields were captured")

        out = np.full((self.n_fields, discretisation.n_dofs), np.nan)

        for i, cell in enumerate(discretisation.cells):
            values = self._cell_values.get(cell)
            if values is None:
                values = self._from_parent(cell)
            out[:, discretisation.cell_dofs[i]] = values

        if np.any(np.isnan(out)):
            raise AdaptWaveError("Transferred fields contain uninitialised values")

        return [out[f] for f in range(self.n_fields)]

    def _from_parent(self, cell):
        parent = cell.parent
        parent_values = self._cell_values.get(parent) if parent is not None else None
        if parent_values is None:
            raise AdaptWaveError(f"No captured values for {cell} or its parent")

        position = parent.children.index(cell)
        i, j = position % 2, position // 2
        xi = 0.5 * i + np.array([0.0, 0.5, 0.5, 0.0])
        eta = 0.5 * j + np.array([0.0, 0.0, 0.5, 0.5])
        return parent_values @ shape_values(xi, eta).T


class AdaptiveMeshController(aw_object):
    r"""
    Error-driven refinement and coarsening of the mesh of a running simulation.

    One call of :meth:`adapt`

    1. evaluates the error indicator on the displacement,
    2. marks cells by fixed fractions of the total indicator,
    3. keeps the levels inside ``[min_level, max_level]``,
    4. changes the mesh and carries U and V across,
    5. makes the carried fields conforming at hanging nodes.

    Parameters
    ----------
    policy : RefinementPolicy
        Level band and marking fractions.
    estimator : optional
        Object with ``estimate(discretisation, field)``; Kelly by default.
    """

    def __init__(self, policy, estimator=None, verbose=False):
        super().__init__()

        self.policy = policy
        self.estimator = estimator if estimator is not None else KellyErrorEstimator()
        self.verbose = verbose
        self.last_indicators = None

    def _object_viewer(self):
        from adaptwave.mpi import pprint

        pprint(f"Levels {self.policy.min_level} .. {self.policy.max_level}")
        pprint(
            f"Refine fraction {self.policy.refine_fraction}, coarsen fraction {self.policy.coarsen_fraction}"
        )

    def mark(self, discretisation, indicators, policy=None):
        """Set the refine / coarsen flags of the active cells from `indicators`."""
        policy = policy if policy is not None else self.policy
        refine, coarsen = fixed_fraction_marking(
            indicators, policy.refine_fraction, policy.coarsen_fraction
        )

        for cell, r, c in zip(discretisation.cells, refine, coarsen):
            cell.refine_flag = bool(r)
            cell.coarsen_flag = bool(c)

        clamp_refinement_flags(discretisation.mesh, policy.min_level, policy.max_level)
        return refine, coarsen

    @timing.routine_timer_decorator
    def adapt(self, state, discretisation, min_level: Optional[int] = None, max_level: Optional[int] = None):
        """
        Adapt the mesh of `discretisation` to the displacement of `state`.

        Returns the discretisation to continue with: a new generation if the
        mesh changed, otherwise `discretisation` itself. `state` is rebound
        to the returned discretisation.
        """
        # Level overrides apply to this call only
        policy = self.policy
        if min_level is not None or max_level is not None:
            policy = dataclasses.replace(
                policy,
                min_level=policy.min_level if min_level is None else min_level,
                max_level=policy.max_level if max_level is None else max_level,
            )

        mesh = discretisation.mesh
        if not discretisation.is_current():
            raise AdaptWaveError("The discretisation does not describe the current mesh")
        state.check(discretisation)

        indicators = np.asarray(self.estimator.estimate(discretisation, state.U), dtype=float)
        if indicators.shape != (discretisation.n_active_cells,):
            raise AdaptWaveError(
                f"Error indicator returned {indicators.shape} values for {discretisation.n_active_cells} cells"
            )
        self.last_indicators = indicators

        self.mark(discretisation, indicators, policy)
        mesh.prepare_coarsening_and_refinement()

        transfer = SolutionTransfer(discretisation)
        transfer.prepare_for_coarsening_and_refinement([state.U, state.V])

        changed = mesh.execute_coarsening_and_refinement()
        check_refinement_bounds(mesh, policy.min_level, policy.max_level)

        if not changed:
            logger.debug("Mesh adaptation left the mesh unchanged")
            return discretisation

        new_discretisation = Discretisation(mesh, generation=discretisation.generation + 1)
        U, V = transfer.interpolate(new_discretisation)
        new_discretisation.constraints.distribute(U)
        new_discretisation.constraints.distribute(V)

        state.rebind(new_discretisation, U, V)

        if self.verbose:
            from adaptwave.mpi import pprint

            pprint(f"Number of active cells: {new_discretisation.n_active_cells}")
            pprint(f"Number of degrees of freedom: {new_discretisation.n_dofs}")

        return new_discretisation
