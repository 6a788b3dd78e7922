"""
Error kinds raised by adaptwave.

All of them are fatal for a run: nothing is retried, the exception
propagates to the process entry point, which reports it and exits with a
non-zero status.
"""


class AdaptWaveError(RuntimeError):
    """Base class for adaptwave run-time failures."""

    pass


class ConvergenceFailure(AdaptWaveError):
    """The linear solver did not reach its tolerance within the iteration budget."""

    def __init__(self, label, iterations, reason=None, residual_norm=None):
        self.label = label
        self.iterations = iterations
        self.reason = reason
        self.residual_norm = residual_norm

        msg = f"{label}: linear solver failed to converge after {iterations} iterations"
        if reason is not None:
            msg += f" (PETSc converged reason {reason})"
        if residual_norm is not None:
            msg += f", residual norm {residual_norm:.6e}"
        super().__init__(msg)


class InvalidStateSize(AdaptWaveError):
    """A field vector does not match the discretisation it is used with."""

    def __init__(self, name, actual, expected, generation=None):
        self.name = name
        self.actual = actual
        self.expected = expected
        self.generation = generation

        where = "" if generation is None else f" of generation {generation}"
        super().__init__(
            f"Vector '{name}' has {actual} entries but the discretisation{where} has {expected} degrees of freedom"
        )


class RefinementBoundsViolated(AdaptWaveError):
    """A mesh adaptation left active cells outside the permitted level band."""

    def __init__(self, min_level, max_level, observed_min, observed_max):
        self.min_level = min_level
        self.max_level = max_level
        self.observed_min = observed_min
        self.observed_max = observed_max

        super().__init__(
            f"Active cell levels [{observed_min}, {observed_max}] fall outside the "
            f"permitted band [{min_level}, {max_level}]"
        )
