r"""
A posteriori error indicator for bilinear fields.

The Kelly indicator measures the jump of the normal derivative of a
continuous field across the interior faces of each cell:

.. math::

    \eta_K^2 = \frac{h_K}{24} \sum_{F \subset \partial K} \int_F
        \left[ \frac{\partial u_h}{\partial n} \right]^2 \, ds

where :math:`h_K` is the cell diameter. Boundary faces contribute nothing.
Each side is integrated in two halves with a two-point Gauss rule, so a
side shared with two finer cells is split along their common vertex.
"""

import numpy as np

import adaptwave.timing as timing
from adaptwave.meshing.quadtree import SIDE_NORMALS

_GAUSS_1D = np.array([0.5 - 0.5 / np.sqrt(3.0), 0.5 + 0.5 / np.sqrt(3.0)])


def _side_points(origins, h, side, tau):
    x0 = origins[:, 0][:, None]
    y0 = origins[:, 1][:, None]
    hh = h[:, None]
    tau = np.asarray(tau)[None, :]

    if side == 0:
        return np.stack(np.broadcast_arrays(x0, y0 + tau * hh), axis=-1)
    elif side == 1:
        return np.stack(np.broadcast_arrays(x0 + hh, y0 + tau * hh), axis=-1)
    elif side == 2:
        return np.stack(np.broadcast_arrays(x0 + tau * hh, y0), axis=-1)
    else:
        return np.stack(np.broadcast_arrays(x0 + tau * hh, y0 + hh), axis=-1)


@timing.routine_timer_decorator
def kelly_error_indicator(discretisation, u):
    """
    Per-cell Kelly indicator of the field `u`.

    Returns
    -------
    numpy.ndarray
        One non-negative value per active cell, in the cell order of
        `discretisation`.
    """
    discretisation.check_vector("u", u)

    n_cells = discretisation.n_active_cells
    origins = discretisation.cell_origins
    h = discretisation.cell_sizes
    cells = np.arange(n_cells)

    face_integrals = np.zeros(n_cells)

    for side in range(4):
        normal = np.array(SIDE_NORMALS[side])
        for half in range(2):
            neighbours = discretisation.face_neighbours[:, side, half]
            interior = neighbours >= 0
            if not np.any(interior):
                continue

            tau = 0.5 * (half + _GAUSS_1D)
            points = _side_points(origins[interior], h[interior], side, tau)

            own = np.repeat(cells[interior][:, None], tau.size, axis=1)
            other = np.repeat(neighbours[interior][:, None], tau.size, axis=1)

            jump = (
                discretisation.gradient(u, own, points) - discretisation.gradient(u, other, points)
            ) @ normal

            # Half-side length h/2 and Gauss weights 1/2
            face_integrals[interior] += 0.25 * h[interior] * np.sum(jump**2, axis=1)

    diameter = np.sqrt(2.0) * h
    return np.sqrt(diameter / 24.0 * face_integrals)


class KellyErrorEstimator:
    """Error indicator wrapper used by the mesh controller"""

    def estimate(self, discretisation, field):
        return kelly_error_indicator(discretisation, field)

    __call__ = estimate
