import numpy as np
import pytest
import sympy

from adaptwave.function import (
    ScalarFunction,
    WaveProblemData,
    pulse_boundary_expression,
    pulse_problem,
    t,
    x,
    y,
)

pytestmark = pytest.mark.level_1


def test_pulse_values():
    g = ScalarFunction(pulse_boundary_expression())

    assert g(-1.0, 0.0, 0.125) == pytest.approx(1.0)
    assert g(-1.0, 0.2, 0.0625) == pytest.approx(np.sin(np.pi / 4))

    # outside the support in space or time
    assert g(1.0, 0.0, 0.125) == 0.0
    assert g(-1.0, 0.5, 0.125) == 0.0
    assert g(-1.0, 0.0, 0.6) == 0.0


def test_pulse_problem_velocity():
    problem = pulse_problem()

    assert problem.boundary_velocity(-1.0, 0.0, 0.0) == pytest.approx(4.0 * np.pi)
    assert problem.boundary_velocity(-1.0, 0.0, 0.125) == pytest.approx(0.0, abs=1.0e-12)
    assert problem.initial_displacement.is_zero
    assert problem.initial_velocity.is_zero
    assert problem.forcing.is_zero


def test_evaluate_on_points():
    f = ScalarFunction(x**2 + y * t)
    coords = np.array([[1.0, 2.0], [3.0, -1.0], [0.0, 0.0]])

    np.testing.assert_allclose(f.evaluate(coords, 2.0), [5.0, 7.0, 0.0])


def test_constant_broadcasts():
    f = ScalarFunction(3)
    values = f.evaluate(np.zeros((5, 2)), 1.0)

    assert values.shape == (5,)
    np.testing.assert_array_equal(values, 3.0)


def test_unknown_symbols_rejected():
    z = sympy.Symbol("z")

    with pytest.raises(ValueError, match="z"):
        ScalarFunction(x + z)


def test_time_derivative():
    f = ScalarFunction(sympy.sin(2 * t) * x)
    df = f.time_derivative()

    assert df(1.5, 0.0, 0.0) == pytest.approx(3.0)
    assert sympy.simplify(df.expr - 2 * x * sympy.cos(2 * t)) == 0


def test_problem_from_expressions():
    problem = WaveProblemData.from_boundary_displacement(t * x, initial_displacement=x * y)

    assert problem.boundary_velocity(2.0, 0.0, 7.0) == pytest.approx(2.0)
    assert problem.initial_displacement(2.0, 3.0, 0.0) == pytest.approx(6.0)
    assert problem.boundary_velocity.name == "boundary V"
