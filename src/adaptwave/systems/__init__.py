# adaptwave systems: the linear solver, the theta-method stepper and the time-level state

from .solvers import CGSolver
from .solvers import ThetaWaveStepper
from .solvers import StepResult
from .solvers import apply_boundary_values, mat_mult

from .ddt import SimulationState
