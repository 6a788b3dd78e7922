r"""
Linear solver and time stepper for the wave equation.

The second-order equation :math:`u_{tt} = \nabla^2 u + f` is written as the
first-order system :math:`U' = V`, :math:`V' = -AU + F` and integrated with
the theta method. With mass matrix :math:`M`, Laplace matrix :math:`A`, time
step :math:`k` and weight :math:`\theta`, one step reads

.. math::

    (M + \theta^2 k^2 A)\, U^n = M U^{n-1} + k M V^{n-1}
        - \theta (1 - \theta) k^2 A U^{n-1} + \theta k\, G^n

    M V^n = -\theta k A U^n + M V^{n-1} - (1 - \theta) k A U^{n-1} + G^n

with the forcing terms :math:`G^n = \theta k F(t_n) + (1 - \theta) k F(t_{n-1})`.
Dirichlet values are imposed on both systems at :math:`t_n`.

Both systems are symmetric positive definite for any :math:`\theta > 0` and
are solved with unpreconditioned conjugate gradients.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from petsc4py import PETSc

import adaptwave.timing as timing
from adaptwave.errors import ConvergenceFailure
from adaptwave.discretisation import BoundaryValues
from adaptwave.utilities._api_tools import aw_object

logger = logging.getLogger(__name__)


def _as_vec(array):
    return PETSc.Vec().createWithArray(array, comm=PETSc.COMM_SELF)


def mat_mult(mat, array):
    """``mat @ array`` for a PETSc matrix and a numpy vector"""
    x = _as_vec(np.ascontiguousarray(array, dtype=PETSc.ScalarType))
    y = mat.createVecLeft()
    mat.mult(x, y)
    return y.getArray().copy()


def apply_boundary_values(matrix, x, b, boundary_values):
    r"""
    Impose ``x[i] = value`` for every ``{i: value}`` in `boundary_values` on
    the system ``matrix x = b``.

    Rows and columns of the constrained dofs are eliminated symmetrically
    (``Mat.zeroRowsColumns``), the column contributions are moved to `b` and
    the eliminated rows keep the mean diagonal of those rows, so the matrix
    stays symmetric positive definite. `matrix`, `x` and `b` are modified in
    place.
    """
    if not boundary_values:
        return

    rows = np.array(sorted(boundary_values.keys()), dtype=PETSc.IntType)
    x[rows] = [boundary_values[int(r)] for r in rows]

    diagonal = matrix.getDiagonal().getArray()[rows]
    matrix.zeroRowsColumns(rows, diag=float(np.mean(diagonal)), x=_as_vec(x), b=_as_vec(b))


class CGSolver(aw_object):
    r"""
    Conjugate gradient solver for symmetric positive definite systems.

    Parameters
    ----------
    tolerance : float
        The iteration stops once :math:`\|b - Ax\| \le tolerance \cdot \|b\|`.
    max_iterations : int
        Iteration budget. Running out of it raises
        :class:`~adaptwave.errors.ConvergenceFailure`.
    petsc_options_prefix : str
        Prefix of the underlying KSP; options such as
        ``-aw_cg_ksp_monitor`` or ``-aw_cg_pc_type jacobi`` apply to it.

    The vector passed to :meth:`solve` is used as the initial guess.
    """

    @timing.routine_timer_decorator
    def __init__(
        self,
        tolerance: float = 1.0e-8,
        max_iterations: int = 1000,
        petsc_options_prefix: str = "aw_cg_",
        verbose=False,
    ):
        super().__init__()

        if not tolerance > 0.0:
            raise ValueError(f"Parameter 'tolerance' must be positive, got {tolerance}")
        if max_iterations < 1:
            raise ValueError(f"Parameter 'max_iterations' must be at least 1, got {max_iterations}")

        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.verbose = verbose
        self.petsc_options_prefix = petsc_options_prefix
        self.petsc_options = PETSc.Options(petsc_options_prefix)

        self.ksp = PETSc.KSP().create(comm=PETSc.COMM_SELF)
        self.ksp.setOptionsPrefix(petsc_options_prefix)
        self.ksp.setType("cg")
        self.ksp.getPC().setType("none")
        self.ksp.setTolerances(rtol=tolerance, atol=1.0e-50, max_it=max_iterations)
        self.ksp.setInitialGuessNonzero(True)
        self.ksp.setFromOptions()
        # -aw_cg_ksp_rtol / -aw_cg_ksp_max_it take precedence
        self.tolerance, _, _, self.max_iterations = self.ksp.getTolerances()
        self._operator_size = None

    def _object_viewer(self):
        from adaptwave.mpi import pprint

        pprint(f"KSP {self.ksp.getType()} / PC {self.ksp.getPC().getType()}")
        pprint(f"tolerance {self.tolerance:g}, max iterations {self.max_iterations}")

    @timing.routine_timer_decorator
    def solve(self, A, x, b, tolerance=None, max_iterations=None, label="system"):
        """
        Solve ``A x = b`` in place of `x`.

        Returns
        -------
        int
            Number of iterations used.
        """
        self.ksp.setTolerances(
            rtol=tolerance if tolerance is not None else self.tolerance,
            max_it=max_iterations if max_iterations is not None else self.max_iterations,
        )

        if np.linalg.norm(b) == 0.0:
            x[:] = 0.0
            return 0

        # A KSP cannot change operator sizes once it has been set up
        if A.getSize() != self._operator_size:
            self.ksp.reset()
            self._operator_size = A.getSize()

        self.ksp.setOperators(A)
        self.ksp.solve(_as_vec(b), _as_vec(x))

        iterations = self.ksp.getIterationNumber()
        reason = self.ksp.getConvergedReason()
        if reason < 0:
            raise ConvergenceFailure(
                label, iterations, reason=reason, residual_norm=self.ksp.getResidualNorm()
            )

        if self.verbose:
            from adaptwave.mpi import pprint

            pprint(f"   {label}: {iterations} CG iterations.")

        return iterations


@dataclass(frozen=True)
class StepResult:
    """Outcome of one time step"""

    time: float
    step: int
    iterations_u: int
    iterations_v: int
    energy: float


class ThetaWaveStepper(aw_object):
    r"""
    Theta-method time stepper for the displacement / velocity system.

    Parameters
    ----------
    theta_parameters : ThetaParameters
        Time step :math:`k` and weight :math:`\theta`.
    problem : WaveProblemData
        Forcing and boundary data.
    solver : CGSolver, optional
        Linear solver for both systems.
    boundary_id :
        Boundary on which the Dirichlet data apply (None: all of it).

    The operators of a discretisation are cached; they are rebuilt when
    :meth:`step` is called with a different discretisation.
    """

    def __init__(
        self,
        theta_parameters,
        problem,
        solver: Optional[CGSolver] = None,
        boundary_id=None,
        verbose=False,
    ):
        super().__init__()

        self.theta_parameters = theta_parameters
        self.problem = problem
        self.solver = solver if solver is not None else CGSolver()
        self.boundary_id = boundary_id
        self.verbose = verbose

        self._discretisation = None
        self._matrix_u = None
        self._boundary_u = None
        self._boundary_v = None

    @property
    def theta(self):
        return self.theta_parameters.theta

    @property
    def time_step(self):
        return self.theta_parameters.time_step

    def _object_viewer(self):
        from adaptwave.mpi import pprint

        pprint(f"theta = {self.theta:g}, k = {self.time_step:g}")
        self.solver._object_viewer()

    @timing.routine_timer_decorator
    def setup(self, discretisation):
        """Cache the implicit matrix and the boundary data of `discretisation`"""
        if discretisation is self._discretisation:
            return

        k, theta = self.time_step, self.theta
        matrix_u = discretisation.condensed_mass_matrix.copy()
        matrix_u.axpy(
            theta * theta * k * k,
            discretisation.condensed_laplace_matrix,
            structure=PETSc.Mat.Structure.SAME_NONZERO_PATTERN,
        )

        self._matrix_u = matrix_u
        self._boundary_u = BoundaryValues(discretisation, self.problem.boundary_displacement)
        self._boundary_v = BoundaryValues(discretisation, self.problem.boundary_velocity)
        self._discretisation = discretisation

        logger.debug("Stepper operators rebuilt for generation %d", discretisation.generation)

    def forcing_terms(self, discretisation, time):
        r""":math:`\theta k F(t) + (1 - \theta) k F(t - k)`"""
        k, theta = self.time_step, self.theta
        forcing = self.problem.forcing
        if forcing.is_zero:
            return discretisation.zero_vector()

        return theta * k * discretisation.assemble_forcing(forcing, time) + (
            1.0 - theta
        ) * k * discretisation.assemble_forcing(forcing, time - k)

    def energy(self, state, discretisation):
        r""":math:`\tfrac{1}{2}(V^T M V + U^T A U)`"""
        MV = mat_mult(discretisation.mass_matrix, state.V)
        AU = mat_mult(discretisation.laplace_matrix, state.U)
        return 0.5 * (float(np.dot(state.V, MV)) + float(np.dot(state.U, AU)))

    @timing.routine_timer_decorator
    def step(self, state, discretisation):
        """
        Advance `state` by one time step on `discretisation`.

        The state is only modified once both systems have been solved; a
        :class:`~adaptwave.errors.ConvergenceFailure` leaves it untouched.
        """
        state.check(discretisation)
        self.setup(discretisation)

        k, theta = self.time_step, self.theta
        time = state.time + k
        constraints = discretisation.constraints

        M = discretisation.mass_matrix
        A = discretisation.laplace_matrix
        forcing_terms = self.forcing_terms(discretisation, time)

        M_U_prev = mat_mult(M, state.U_prev)
        M_V_prev = mat_mult(M, state.V_prev)
        A_U_prev = mat_mult(A, state.U_prev)

        # Displacement
        rhs = M_U_prev + k * M_V_prev - theta * (1.0 - theta) * k * k * A_U_prev + theta * k * forcing_terms
        constraints.condense(rhs)

        U = state.U_prev.copy()
        matrix = self._matrix_u.copy()
        apply_boundary_values(
            matrix, U, rhs, self._boundary_u.values_at(time, self.boundary_id)
        )
        iterations_u = self.solver.solve(matrix, U, rhs, label="U")
        constraints.distribute(U)

        # Velocity
        rhs = -theta * k * mat_mult(A, U) + M_V_prev - (1.0 - theta) * k * A_U_prev + forcing_terms
        constraints.condense(rhs)

        V = state.V_prev.copy()
        matrix = discretisation.condensed_mass_matrix.copy()
        apply_boundary_values(
            matrix, V, rhs, self._boundary_v.values_at(time, self.boundary_id)
        )
        iterations_v = self.solver.solve(matrix, V, rhs, label="V")
        constraints.distribute(V)

        state.update_post_solve(U, V, time, state.step + 1)
        energy = self.energy(state, discretisation)

        if self.verbose:
            from adaptwave.mpi import pprint

            pprint(f"Time step {state.step} at t={state.time:.6g}")
            pprint(f"   u-equation: {iterations_u} CG iterations.")
            pprint(f"   v-equation: {iterations_v} CG iterations.")
            pprint(f"   Total energy: {energy:.6g}")

        return StepResult(
            time=state.time,
            step=state.step,
            iterations_u=iterations_u,
            iterations_v=iterations_v,
            energy=energy,
        )
