"""
Space-time functions defined by sympy expressions.

A :class:`ScalarFunction` wraps a sympy expression in the coordinate
symbols ``x``, ``y`` and the time symbol ``t``. It is evaluated on arrays
of points through a cached, numpy-lambdified version of the expression,
so the boundary and forcing data of a run are pure functions of position
and time.

The data of the adaptive wave problem are collected in
:class:`WaveProblemData`; :func:`pulse_problem` builds the reference
problem: zero initial data and forcing, and a sine pulse entering through
the middle third of the left edge during the first half time unit.
"""

import hashlib
from dataclasses import dataclass

import numpy as np
import sympy

x, y, t = sympy.symbols("x y t", real=True)

# Key: (expr_hash, symbols_tuple); value: lambdified function
_lambdify_cache = {}


def _expr_hash(expr):
    expr_str = sympy.srepr(expr)
    return hashlib.md5(expr_str.encode()).hexdigest()


def get_cached_lambdified(expr, symbols):
    """Lambdify `expr` with numpy, reusing an earlier result for the same expression."""
    cache_key = (_expr_hash(expr), tuple(str(s) for s in symbols))
    if cache_key not in _lambdify_cache:
        _lambdify_cache[cache_key] = sympy.lambdify(symbols, expr, modules="numpy")
    return _lambdify_cache[cache_key]


class ScalarFunction:
    """
    A scalar function f(x, y, t) given as a sympy expression.

    Parameters
    ----------
    expr : sympy expression or number
        May only contain the symbols ``x``, ``y`` and ``t`` of this module.
    name : str, optional
        Label used in messages.

    Example
    -------
    >>> from adaptwave.function.expressions import ScalarFunction, x, t
    >>> f = ScalarFunction(sympy.sin(x) * t)
    >>> f.evaluate(np.array([[0.0, 0.0], [np.pi / 2, 0.0]]), 2.0)
    array([0., 2.])
    """

    def __init__(self, expr, name=None):
        self.expr = sympy.sympify(expr)
        self.name = name if name is not None else str(self.expr)

        unknown = self.expr.free_symbols - {x, y, t}
        if unknown:
            raise ValueError(
                f"Function '{self.name}' contains symbols {sorted(str(s) for s in unknown)}; "
                f"only x, y and t are allowed"
            )

        self._fn = get_cached_lambdified(self.expr, (x, y, t))

    def __repr__(self):
        return f"ScalarFunction({self.expr})"

    def evaluate(self, coords, time):
        """Values at the points `coords` (N x 2) at `time`, shape (N,)"""
        coords = np.asarray(coords, dtype=float)
        if coords.ndim == 1:
            coords = coords.reshape(1, -1)

        xs = coords[:, 0]
        ys = coords[:, 1]
        # All arguments share one shape so piecewise conditions broadcast
        ts = np.full_like(xs, float(time))

        values = self._fn(xs, ys, ts)
        return np.array(np.broadcast_to(np.asarray(values, dtype=float), xs.shape))

    def __call__(self, px, py, time):
        return float(self.evaluate(np.array([[px, py]]), time)[0])

    def time_derivative(self, name=None):
        """The function df/dt, derived symbolically"""
        return ScalarFunction(sympy.diff(self.expr, t), name=name)

    @property
    def is_zero(self):
        return self.expr == 0


@dataclass(frozen=True)
class WaveProblemData:
    """Initial, boundary and forcing data of the wave equation u_tt = laplace(u) + f."""

    initial_displacement: ScalarFunction
    initial_velocity: ScalarFunction
    forcing: ScalarFunction
    boundary_displacement: ScalarFunction
    boundary_velocity: ScalarFunction

    @classmethod
    def from_boundary_displacement(cls, boundary_displacement, initial_displacement=0, initial_velocity=0, forcing=0):
        """
        Problem data whose boundary velocity is the time derivative of the
        given boundary displacement expression.
        """
        g = ScalarFunction(boundary_displacement, name="boundary U")
        return cls(
            initial_displacement=ScalarFunction(initial_displacement, name="initial U"),
            initial_velocity=ScalarFunction(initial_velocity, name="initial V"),
            forcing=ScalarFunction(forcing, name="forcing"),
            boundary_displacement=g,
            boundary_velocity=g.time_derivative(name="boundary V"),
        )


def pulse_boundary_expression(frequency=4, duration=0.5, half_width=sympy.Rational(1, 3)):
    r"""
    :math:`\sin(\omega t)` with :math:`\omega = frequency\,\pi` on the part of
    the boundary with x < 0 and |y| < half_width while t <= duration; zero
    elsewhere.
    """
    support = sympy.And(t <= duration, x < 0, y > -half_width, y < half_width)
    return sympy.Piecewise((sympy.sin(frequency * sympy.pi * t), support), (0, True))


def pulse_problem():
    """The reference problem: a boundary pulse entering a domain at rest."""
    return WaveProblemData.from_boundary_displacement(pulse_boundary_expression())
