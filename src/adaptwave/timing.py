##~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~##
##                                                                                   ##
##  This file forms part of the adaptwave wave-equation modelling package.           ##
##                                                                                   ##
##  For full license and copyright information, please refer to the LICENSE.md file  ##
##  located at the project root, or contact the authors.                             ##
##                                                                                   ##
##~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~##
"""
adaptwave performance timing

Routines decorated with :func:`routine_timer_decorator` are registered as
PETSc log events, so their timings appear in the PETSc log next to the
KSPSolve / MatMult events of the linear solves.

Basic Usage
-----------
>>> import adaptwave as aw
>>>
>>> aw.timing.start()
>>> simulation = aw.WaveSimulation(aw.SimulationConfig(end_time=0.1))
>>> simulation.run()
>>> aw.timing.print_table()
"""

import functools as _functools

from adaptwave.mpi import rank as RANK

# Global cache of registered PETSc events (prevents duplicate registration)
_petsc_events = {}
_petsc_logging_enabled = False


def start():
    """
    Start PETSc performance logging.

    Safe to call multiple times (subsequent calls are no-ops).
    """
    enable_petsc_logging()


def enable_petsc_logging():
    """
    Enable PETSc performance logging.

    Called automatically by start(). Can also be called directly.
    """
    global _petsc_logging_enabled

    if _petsc_logging_enabled:
        return

    from petsc4py import PETSc

    if not PETSc.Log.isActive():
        PETSc.Log.begin()
    _petsc_logging_enabled = True


def print_table(filename=None, format="auto"):
    """
    Display or save the PETSc performance logging summary.

    Parameters
    ----------
    filename : str, optional
        If provided, write log to this file. Otherwise print to console.
        A `.csv` extension selects comma-separated output.
    format : str, optional
        "auto" (default, detect from filename), "ascii" or "csv".
    """
    from petsc4py import PETSc

    if not PETSc.Log.isActive():
        if RANK == 0:
            print("PETSc logging not enabled. Call aw.timing.start() first.")
        return

    if filename:
        if format == "auto":
            use_format = "csv" if filename.endswith(".csv") else "ascii"
        else:
            use_format = format

        viewer = PETSc.Viewer().createASCII(filename, "w")
        if use_format == "csv":
            viewer.pushFormat(PETSc.Viewer.Format.ASCII_CSV)

        PETSc.Log.view(viewer)
        viewer.destroy()

        if RANK == 0:
            print(f"Timing results saved to {filename}")
    else:
        PETSc.Log.view()


view = print_table


def routine_timer_decorator(routine, class_name=None):
    """
    Decorator that registers a function as a PETSc timing event.

    Parameters
    ----------
    routine : callable
        Function or method to decorate
    class_name : str, optional
        Class name for better event labeling (defaults to the qualified name)

    Returns
    -------
    callable
        Wrapped function that tracks calls via PETSc events

    Example
    -------
    >>> @aw.timing.routine_timer_decorator
    >>> def expensive_computation():
    >>>     ...
    """
    from petsc4py import PETSc

    if class_name:
        event_name = f"{class_name}.{routine.__name__}"
    else:
        event_name = routine.__qualname__

    if event_name not in _petsc_events:
        _petsc_events[event_name] = PETSc.Log.Event(event_name)

    event = _petsc_events[event_name]

    @_functools.wraps(routine)
    def timed(*args, **kwargs):
        event.begin()
        try:
            return routine(*args, **kwargs)
        finally:
            event.end()

    return timed
