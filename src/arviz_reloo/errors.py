"""Exceptions raised while correcting LOO estimates by refitting."""

__all__ = [
    "RelooError",
    "ValidationError",
    "ConsistencyError",
    "MissingDiagnosticsError",
    "RefitError",
]


class RelooError(Exception):
    """Base class for all errors raised by arviz_reloo."""


class ValidationError(RelooError, TypeError, ValueError):
    """Wrong object kind or shape mismatch between the model and the LOO estimate."""


class ConsistencyError(RelooError, ValueError):
    """The response values of the model and the LOO estimate do not match."""


class MissingDiagnosticsError(RelooError, ValueError):
    """The LOO estimate lacks the pointwise Pareto k diagnostics."""


class RefitError(RelooError, RuntimeError):
    """A refit leaving out one observation failed.

    Parameters
    ----------
    message : str
    position : int, optional
        Flat position of the observation whose refit failed.
    """

    def __init__(self, message, position=None):
        super().__init__(message)
        self.position = position
