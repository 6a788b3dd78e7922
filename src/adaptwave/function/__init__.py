from .expressions import (
    ScalarFunction,
    WaveProblemData,
    pulse_boundary_expression,
    pulse_problem,
    get_cached_lambdified,
)
from .expressions import x, y, t
