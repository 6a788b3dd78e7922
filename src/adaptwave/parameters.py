"""
Run parameters for adaptive wave-equation simulations.

Three structures describe a run:

ThetaParameters
    time step and the theta weight of the implicit scheme
RefinementPolicy
    level band and marking fractions used by the mesh adaptation
SimulationConfig
    everything else a run needs, with the defaults of the reference
    problem (initial refinement 4, four pre-refinement passes, theta bias 50,
    end time 5, time step 1/64, fractions 0.6 / 0.4, adapt every 5 steps)

Every field of :class:`SimulationConfig` can be overridden from the command
line with a PETSc-style ``-aw_<field> <value>`` option through
:meth:`SimulationConfig.from_options`.
"""

import warnings
import dataclasses
from dataclasses import dataclass, fields
from typing import Optional, Tuple


@dataclass(frozen=True)
class ThetaParameters:
    """
    Time step k and theta weight of the implicit scheme.

    The implicit system matrix is M + theta^2 k^2 A, which stays symmetric
    positive definite for any theta > 0. Values above 1 leave the classical
    unconditionally stable range and are reported with a warning.
    """

    time_step: float
    theta: float

    def __post_init__(self):
        if not self.time_step > 0.0:
            raise ValueError(f"Parameter 'time_step' must be positive, got {self.time_step}")
        if not self.theta > 0.0:
            raise ValueError(f"Parameter 'theta' must be positive, got {self.theta}")
        if self.theta > 1.0:
            warnings.warn(
                f"theta = {self.theta:g} lies outside (0, 1]; the scheme is strongly damped "
                f"and outside the classical stability range of the theta method",
                UserWarning,
                stacklevel=3,
            )

    @classmethod
    def from_bias(cls, time_step: float, theta_bias: float = 50.0):
        """theta = 0.5 + theta_bias * time_step"""
        return cls(time_step=time_step, theta=0.5 + theta_bias * time_step)


@dataclass(frozen=True)
class RefinementPolicy:
    """
    Level band and fixed-fraction marking parameters.

    Cells are never refined above `max_level` nor coarsened below
    `min_level`, whatever their indicator value.
    """

    min_level: int = 4
    max_level: int = 8
    refine_fraction: float = 0.6
    coarsen_fraction: float = 0.4
    pre_refinement_steps: int = 4

    def __post_init__(self):
        if self.min_level < 0:
            raise ValueError(f"Parameter 'min_level' must be non-negative, got {self.min_level}")
        if self.max_level < self.min_level:
            raise ValueError(
                f"Parameter 'max_level' ({self.max_level}) must not be below 'min_level' ({self.min_level})"
            )
        for name in ("refine_fraction", "coarsen_fraction"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"Parameter '{name}' must be in range [0, 1], got {value}")
        if self.pre_refinement_steps < 0:
            raise ValueError(
                f"Parameter 'pre_refinement_steps' must be non-negative, got {self.pre_refinement_steps}"
            )


@dataclass
class SimulationConfig:
    """
    Configuration of a :class:`adaptwave.model.WaveSimulation` run.

    Attributes
    ----------
    initial_global_refinement : int
        Number of global refinements of the coarse mesh. Also the lowest
        level the adaptation may coarsen to.
    n_pre_refinement_steps : int
        Number of pre-refinement passes. The highest level the adaptation
        may refine to is `initial_global_refinement + n_pre_refinement_steps`.
    theta_bias : float
        theta = 0.5 + theta_bias * time_step.
    end_time : float
        The main loop steps while t <= end_time.
    time_step : float
        Step size k.
    refine_fraction, coarsen_fraction : float
        Fixed-fraction marking parameters.
    refinement_interval : int
        The main loop adapts the mesh every `refinement_interval` steps.
    solver_tolerance : float
        Relative residual tolerance of the CG solves.
    solver_max_iterations : int
        Iteration budget of the CG solves.
    min_coords, max_coords : tuple
        Corners of the square domain.
    output_path : str or None
        Directory for solution snapshots. `None` disables output.
    output_format : str
        "h5" writes HDF5 snapshots with an XDMF descriptor.
    verbose : bool
        Print per-step diagnostics.
    """

    initial_global_refinement: int = 4
    n_pre_refinement_steps: int = 4
    theta_bias: float = 50.0
    end_time: float = 5.0
    time_step: float = 1.0 / 64
    refine_fraction: float = 0.6
    coarsen_fraction: float = 0.4
    refinement_interval: int = 5
    solver_tolerance: float = 1.0e-8
    solver_max_iterations: int = 1000
    min_coords: Tuple[float, float] = (-1.0, -1.0)
    max_coords: Tuple[float, float] = (1.0, 1.0)
    output_path: Optional[str] = "."
    output_format: str = "h5"
    verbose: bool = True

    def __post_init__(self):
        if self.initial_global_refinement < 0:
            raise ValueError(
                f"Parameter 'initial_global_refinement' must be non-negative, got {self.initial_global_refinement}"
            )
        if self.n_pre_refinement_steps < 0:
            raise ValueError(
                f"Parameter 'n_pre_refinement_steps' must be non-negative, got {self.n_pre_refinement_steps}"
            )
        if not self.time_step > 0.0:
            raise ValueError(f"Parameter 'time_step' must be positive, got {self.time_step}")
        if self.end_time < 0.0:
            raise ValueError(f"Parameter 'end_time' must be non-negative, got {self.end_time}")
        if self.refinement_interval < 1:
            raise ValueError(
                f"Parameter 'refinement_interval' must be at least 1, got {self.refinement_interval}"
            )
        if not self.solver_tolerance > 0.0:
            raise ValueError(
                f"Parameter 'solver_tolerance' must be positive, got {self.solver_tolerance}"
            )
        if self.solver_max_iterations < 1:
            raise ValueError(
                f"Parameter 'solver_max_iterations' must be at least 1, got {self.solver_max_iterations}"
            )
        if self.output_format not in ("h5",):
            raise ValueError(
                f"Parameter 'output_format' must be one of ['h5'], got {self.output_format}"
            )

        self.min_coords = tuple(float(v) for v in self.min_coords)
        self.max_coords = tuple(float(v) for v in self.max_coords)

    @property
    def theta(self) -> float:
        return 0.5 + self.theta_bias * self.time_step

    def theta_parameters(self) -> ThetaParameters:
        return ThetaParameters.from_bias(self.time_step, self.theta_bias)

    def refinement_policy(self) -> RefinementPolicy:
        return RefinementPolicy(
            min_level=self.initial_global_refinement,
            max_level=self.initial_global_refinement + self.n_pre_refinement_steps,
            refine_fraction=self.refine_fraction,
            coarsen_fraction=self.coarsen_fraction,
            pre_refinement_steps=self.n_pre_refinement_steps,
        )

    def replace(self, **changes):
        """A copy of this configuration with `changes` applied."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_options(cls, options=None, **overrides):
        """
        Build a configuration whose fields can be overridden with
        ``-aw_<field> <value>`` PETSc options.

        Keyword arguments replace the defaults before the options are read,
        so the command line always wins.
        """
        from adaptwave.utilities import Params

        base = cls(**overrides)
        scalar_fields = [
            f.name for f in fields(cls) if f.name not in ("min_coords", "max_coords")
        ]
        params = Params(
            options=options, **{f"aw_{name}": getattr(base, name) for name in scalar_fields}
        )

        values = {name: getattr(params, f"aw_{name}") for name in scalar_fields}
        values["min_coords"] = base.min_coords
        values["max_coords"] = base.max_coords
        return cls(**values)
