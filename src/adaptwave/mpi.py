##~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~##
##                                                                                   ##
##  This file forms part of the adaptwave wave-equation modelling package.           ##
##                                                                                   ##
##  For full license and copyright information, please refer to the LICENSE.md file  ##
##  located at the project root, or contact the authors.                             ##
##                                                                                   ##
##~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~#~##
"""
This module contains routines related to process-aware output via
the Message Passing Interface (MPI).

adaptwave runs on a single process; the communicator is kept so that
diagnostic printing behaves the same way when a script is launched
under ``mpirun``.

Attributes
----------
comm :: mpi4py.MPI.Intracomm
    The MPI communicator.
rank :: int
    The rank of the current process.
size :: int
    The size of the pool of processes.

"""

from mpi4py import MPI as _MPI
import sys as _sys


comm = _MPI.COMM_WORLD
size = comm.size
rank = comm.rank


def _should_rank_execute(current_rank, rank_selector, total_size):
    """
    Determine if a rank should execute based on rank selector.

    Args:
        current_rank: The rank to check
        rank_selector: int, slice, list, tuple, str or callable
        total_size: Total number of ranks

    Returns:
        bool: True if rank should execute
    """

    if rank_selector is None or rank_selector == "all":
        return True

    if isinstance(rank_selector, int):
        return current_rank == rank_selector

    if isinstance(rank_selector, slice):
        return current_rank in range(*rank_selector.indices(total_size))

    if isinstance(rank_selector, (list, tuple)):
        return current_rank in rank_selector

    if isinstance(rank_selector, str):
        if rank_selector == "first":
            return current_rank == 0
        elif rank_selector == "last":
            return current_rank == total_size - 1

    if callable(rank_selector):
        return rank_selector(current_rank)

    return False


def pprint(*args, proc=0, prefix=None, flush=False, **kwargs):
    """
    Rank-aware print that works as a drop-in replacement for print().

    Args:
        *args: Arguments to print (same as standard print())
        proc: Which ranks should print. Can be:
            - int: Single rank (e.g., 0) [default: 0]
            - slice: Range of ranks (e.g., slice(0, 4))
            - list/tuple: Specific ranks (e.g., [0, 3, 7])
            - str: Named patterns ('all', 'first', 'last')
            - callable: Function taking rank and returning bool
        prefix: If True, prefix output with rank number. If None (default),
            automatically enables in parallel (size > 1) and disables in serial.
        flush: If True, forcibly flush the stream (default: False, same as print())
        **kwargs: Additional keyword arguments passed to print() (sep, end, file)

    Example:
        >>> aw.pprint(f"Number of active cells: {mesh.n_active_cells}")
        Number of active cells: 256
    """
    if prefix is None:
        prefix = size > 1

    if _should_rank_execute(rank, proc, size):
        if prefix:
            print(f"[{rank}]", *args, flush=flush, **kwargs)
        else:
            print(*args, flush=flush, **kwargs)
    elif flush:
        _sys.stdout.flush()
