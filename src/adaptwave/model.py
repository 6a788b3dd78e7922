"""
Run loop of an adaptive wave-equation simulation.

The :class:`WaveSimulation` object sequences a run through explicit states:

``INITIAL_MESH``
    the coarse mesh is refined globally and the generation-0
    discretisation is built;
``PRE_REFINING``
    the time loop is (re)started from t = 0 with the initial data, one step
    is taken and, while passes remain, the mesh is adapted to that step and
    the loop restarts on the new mesh;
``MAIN_LOOP``
    steps continue from the last pass without a reset while t does not
    exceed the end time; the mesh is adapted every few steps;
``TERMINATED``
    the run is over.

Every step is written as a snapshot and its energy recorded in
:attr:`WaveSimulation.history`.
"""

import time as _time
import logging
from enum import Enum
from typing import NamedTuple, Optional

import adaptwave.timing as timing
from adaptwave.mpi import pprint
from adaptwave.parameters import SimulationConfig
from adaptwave.meshing import StructuredQuadBox
from adaptwave.discretisation import Discretisation, SnapshotWriter
from adaptwave.function import pulse_problem
from adaptwave.systems import CGSolver, ThetaWaveStepper, SimulationState
from adaptwave.adaptivity import AdaptiveMeshController
from adaptwave.utilities._api_tools import aw_object

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Run lifecycle states"""

    INITIAL_MESH = "initial_mesh"
    PRE_REFINING = "pre_refining"
    MAIN_LOOP = "main_loop"
    TERMINATED = "terminated"


class HistoryRecord(NamedTuple):
    time: float
    step: int
    generation: int
    energy: float


class WaveSimulation(aw_object):
    """
    Adaptive simulation of the wave equation.

    Parameters
    ----------
    config : SimulationConfig, optional
        Run configuration; the defaults reproduce the reference pulse problem.
    problem : WaveProblemData, optional
        Initial, boundary and forcing data (:func:`adaptwave.function.pulse_problem`
        by default).

    Example
    -------
    >>> sim = aw.WaveSimulation(aw.SimulationConfig(end_time=0.1, output_path=None))
    >>> history = sim.run()
    >>> sim.run_state
    <RunState.TERMINATED: 'terminated'>
    """

    def __init__(self, config: Optional[SimulationConfig] = None, problem=None):
        super().__init__()

        self.config = config if config is not None else SimulationConfig()
        self.problem = problem if problem is not None else pulse_problem()

        self.theta_parameters = self.config.theta_parameters()
        self.policy = self.config.refinement_policy()

        self.solver = CGSolver(
            tolerance=self.config.solver_tolerance,
            max_iterations=self.config.solver_max_iterations,
        )
        self.stepper = ThetaWaveStepper(self.theta_parameters, self.problem, solver=self.solver)
        self.controller = AdaptiveMeshController(self.policy)
        self.writer = SnapshotWriter(self.config.output_path, output_format=self.config.output_format)

        self.run_state = RunState.INITIAL_MESH
        self.pre_refinement_step = 0
        self.mesh = None
        self.discretisation = None
        self.state = None
        self.history = []
        self.elapsed = None

    @property
    def verbose(self):
        return self.config.verbose

    def _print(self, *args):
        if self.verbose:
            pprint(*args)

    def _object_viewer(self):
        pprint(f"Run state: {self.run_state.name}")
        pprint(f"theta = {self.theta_parameters.theta:g}, k = {self.theta_parameters.time_step:g}")
        pprint(f"Levels {self.policy.min_level} .. {self.policy.max_level}")
        if self.state is not None:
            self.state._object_viewer()

    ## States

    @timing.routine_timer_decorator
    def setup_initial_mesh(self):
        if self.run_state is not RunState.INITIAL_MESH:
            raise RuntimeError(f"Initial mesh already built (run state {self.run_state.name})")

        (x0, y0), (x1, y1) = self.config.min_coords, self.config.max_coords
        side = min(x1 - x0, y1 - y0)
        elementRes = (int(round((x1 - x0) / side)), int(round((y1 - y0) / side)))

        self.mesh = StructuredQuadBox(
            elementRes=elementRes,
            minCoords=self.config.min_coords,
            maxCoords=self.config.max_coords,
            refinement=self.config.initial_global_refinement,
        )
        self.discretisation = Discretisation(self.mesh, generation=0)
        self.state = SimulationState(self.discretisation)

        self._print(f"Number of active cells: {self.discretisation.n_active_cells}")
        self._print(f"Number of levels: {self.mesh.n_levels}")

        self.run_state = RunState.PRE_REFINING

    def start_time_loop(self):
        """Reset the state to t = 0 with the initial data and write snapshot 0."""
        self.state.reset(self.discretisation, self.problem)

        self._print(f"Number of active cells: {self.discretisation.n_active_cells}")
        self._print(f"Number of degrees of freedom: {self.discretisation.n_dofs}")
        self._print()

        self.write_snapshot()

    def write_snapshot(self):
        return self.writer.write_snapshot(
            self.state.step,
            {"U": self.state.U, "V": self.state.V},
            self.discretisation,
            time=self.state.time,
        )

    def advance(self):
        """One time step, its snapshot and its history record"""
        result = self.stepper.step(self.state, self.discretisation)

        self._print(f"Time step {result.step} at t={result.time:.6g}")
        self._print(f"   u-equation: {result.iterations_u} CG iterations.")
        self._print(f"   v-equation: {result.iterations_v} CG iterations.")

        self.write_snapshot()
        self._print(f"   Total energy: {result.energy:.6g}")

        self.history.append(
            HistoryRecord(result.time, result.step, self.discretisation.generation, result.energy)
        )
        return result

    def adapt(self):
        self.discretisation = self.controller.adapt(
            self.state, self.discretisation, self.policy.min_level, self.policy.max_level
        )
        self._print(f"Number of active cells: {self.discretisation.n_active_cells}")
        self._print(f"Number of degrees of freedom: {self.discretisation.n_dofs}")
        return self.discretisation

    def pre_refine(self):
        """One pre-refinement pass; returns the next run state."""
        self.start_time_loop()
        self.advance()

        if self.pre_refinement_step < self.policy.pre_refinement_steps:
            self.adapt()
            self.pre_refinement_step += 1

            self._print()
            self._print(f"timestep_number = {self.state.step}")
            self._print(f"pre_refinement_step= {self.pre_refinement_step}")
            return RunState.PRE_REFINING

        return RunState.MAIN_LOOP

    def main_loop(self):
        while self.state.time <= self.config.end_time:
            self.advance()
            if self.state.step % self.config.refinement_interval == 0:
                self.adapt()

        return RunState.TERMINATED

    @timing.routine_timer_decorator
    def run(self):
        """
        Run the simulation to the end time.

        Returns
        -------
        list of HistoryRecord
            (t, n, generation, energy) for every step taken, including the
            first step of each pre-refinement pass.
        """
        start = _time.perf_counter()

        if self.run_state is RunState.INITIAL_MESH:
            self.setup_initial_mesh()

        while self.run_state is RunState.PRE_REFINING:
            self.run_state = self.pre_refine()

        if self.run_state is RunState.MAIN_LOOP:
            self.run_state = self.main_loop()

        self.elapsed = _time.perf_counter() - start
        logger.debug("Run finished after %d steps in %.3f s", len(self.history), self.elapsed)

        return self.history

    @property
    def main_loop_steps(self):
        """History records of the steps taken after the last restart"""
        restarts = [i for i, record in enumerate(self.history) if record.step == 1]
        if not restarts:
            return []
        return self.history[restarts[-1] + 1 :]
