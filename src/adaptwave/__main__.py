"""
Command-line entry point.

    python -m adaptwave [-aw_<field> <value> ...] [PETSc options]

Runs the adaptive pulse simulation with the :class:`SimulationConfig`
defaults, any of which can be overridden with ``-aw_<field> <value>``
(for example ``-aw_end_time 1.0 -aw_output_path output``). Options of the
CG solver take the ``-aw_cg_`` prefix. ``-aw_timing`` prints the PETSc
event log at the end of the run.

The exit status is 0 on success and 1 if the run fails, in which case
the reason is reported on stderr.
"""

import sys
import time

from petsc4py import PETSc

import adaptwave as aw


def _option_names(args):
    names = []
    for arg in args:
        if arg.startswith("-") and len(arg) > 1 and not arg[1].isdigit() and arg[1] != ".":
            names.append(arg.lstrip("-"))
    return names


def _report_failure(exc):
    line = "----------------------------------------------------"
    print("\n", file=sys.stderr)
    print(line, file=sys.stderr)
    print("Exception on processing: ", file=sys.stderr)
    print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
    print("Aborting!", file=sys.stderr)
    print(line, file=sys.stderr, flush=True)


def main(argv=None):
    args = sys.argv[1:] if argv is None else list(argv)

    opts = PETSc.Options()
    inserted = [name for name in _option_names(args) if not opts.hasName(name)]

    start = time.perf_counter()
    try:
        if args:
            opts.insertString(" ".join(args))

        if opts.getBool("aw_timing", False):
            aw.timing.start()

        config = aw.SimulationConfig.from_options()
        if config.output_path is not None:
            aw.require_dirs([config.output_path])

        simulation = aw.WaveSimulation(config)
        simulation.run()

        if opts.getBool("aw_timing", False):
            aw.timing.print_table()

    except Exception as exc:
        _report_failure(exc)
        return 1

    finally:
        for name in inserted:
            opts.delValue(name)

    elapsed = time.perf_counter() - start
    aw.pprint(f"{int(elapsed * 1000)}ms")

    return 0


if __name__ == "__main__":
    sys.exit(main())
