from petsc4py import PETSc

# pop the default petsc Signal handler to let petsc errors appear in python
PETSc.Sys.popErrorHandler()

from adaptwave._version import __version__

# Needed everywhere
from adaptwave.utilities import _api_tools

import adaptwave.mpi
import adaptwave.timing
import adaptwave.errors
import adaptwave.parameters
import adaptwave.utilities
import adaptwave.meshing
import adaptwave.discretisation
import adaptwave.function
import adaptwave.systems
import adaptwave.error_estimator
import adaptwave.adaptivity
import adaptwave.model

from adaptwave.mpi import pprint
from adaptwave.utilities import Params
from adaptwave.errors import (
    AdaptWaveError,
    ConvergenceFailure,
    InvalidStateSize,
    RefinementBoundsViolated,
)
from adaptwave.parameters import ThetaParameters, RefinementPolicy, SimulationConfig
from adaptwave.model import RunState, WaveSimulation


## Add an options dictionary for arbitrary adaptwave things

options = PETSc.Options("aw_")


def require_dirs(ListOfDirs):
    """
    List of directories required by this run
    """
    import os

    for dir in ListOfDirs:
        os.makedirs(dir, exist_ok=True)
