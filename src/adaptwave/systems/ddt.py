r"""
Time-level state of the displacement / velocity system.

The :class:`SimulationState` holds the current fields :math:`U^n, V^n`, the
previous-step fields :math:`U^{n-1}, V^{n-1}` used to build the next
right-hand side, the time, the step index and the generation of the
discretisation the vectors belong to.

The history operator is the one-level shift applied after a successful
step:

$$\quad U^{n-1} \leftarrow U^{n}, \qquad V^{n-1} \leftarrow V^{n}$$

Outside of a mesh change every vector has one entry per degree of freedom
of generation :attr:`SimulationState.generation`; :meth:`SimulationState.check`
enforces that.
"""

import numpy as np

import adaptwave.timing as timing
from adaptwave.utilities._api_tools import aw_object


class SimulationState(aw_object):
    r"""
    Displacement / velocity history manager.

    Parameters
    ----------
    discretisation : Discretisation
        Discretisation the vectors are defined on.
    U, V : array, optional
        Initial displacement and velocity (zero if omitted).
    time : float
        Initial time.
    """

    def __init__(self, discretisation, U=None, V=None, time=0.0, verbose=False):
        super().__init__()

        self.verbose = verbose
        self.step = 0
        self.time = float(time)
        self.generation = discretisation.generation
        self.U = discretisation.zero_vector()
        self.V = discretisation.zero_vector()
        self.U_prev = discretisation.zero_vector()
        self.V_prev = discretisation.zero_vector()

        if U is not None or V is not None:
            self.rebind(
                discretisation,
                U if U is not None else discretisation.zero_vector(),
                V if V is not None else discretisation.zero_vector(),
            )

    def _object_viewer(self):
        from adaptwave.mpi import pprint

        pprint(f"t = {self.time:.6g}, step {self.step}, generation {self.generation}")
        pprint(f"|U| = {np.linalg.norm(self.U):.6e}, |V| = {np.linalg.norm(self.V):.6e}")

    @property
    def n_dofs(self):
        return self.U.shape[0]

    def check(self, discretisation):
        """Raise :class:`~adaptwave.errors.InvalidStateSize` on any vector that does not fit `discretisation`."""
        for name in ("U", "V", "U_prev", "V_prev"):
            discretisation.check_vector(name, getattr(self, name))
        return self

    @timing.routine_timer_decorator
    def reset(self, discretisation, problem):
        r"""
        Restart at t = 0, n = 0 from the initial data of `problem`
        interpolated onto `discretisation`.
        """
        self.time = 0.0
        self.step = 0
        self.generation = discretisation.generation

        self.U = discretisation.interpolate(problem.initial_displacement, 0.0)
        self.V = discretisation.interpolate(problem.initial_velocity, 0.0)
        self.update_history()

    def rebind(self, discretisation, U, V):
        """
        Attach transferred fields to a new discretisation. The previous-step
        fields become copies of them.
        """
        self.generation = discretisation.generation
        self.U = discretisation.check_vector("U", np.asarray(U, dtype=float))
        self.V = discretisation.check_vector("V", np.asarray(V, dtype=float))
        self.update_history()

    def update_history(self):
        self.U_prev = self.U.copy()
        self.V_prev = self.V.copy()

    def update_post_solve(self, U, V, time, step):
        """Commit a completed step: new fields, time, index, and the history shift."""
        if self.verbose:
            print(f"Updating history at t = {time:.6g}, step {step}", flush=True)

        self.U = U
        self.V = V
        self.time = time
        self.step = step
        self.update_history()

    def snapshot(self):
        """(t, n, g) triple"""
        return (self.time, self.step, self.generation)
