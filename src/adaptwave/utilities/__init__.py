r"""
Utility infrastructure for adaptwave.

Params
    Parameter container with PETSc command-line overrides.
Stateful, aw_object
    Mixins for state tracking and common object behaviour.
"""

from ._params import Params
from ._api_tools import Stateful, aw_object
