"""Validator functions for common arguments."""

import numpy as np
from arviz_base import rcParams

from arviz_reloo.errors import ValidationError


def validate_dims(dims):
    """Validate `dims` argument.

    Uses the default in rcParams and ensures the returned object is a list.

    Parameters
    ----------
    dims : str, sequence of hashable, or None

    Returns
    -------
    list
    """
    if dims is None:
        dims = rcParams["data.sample_dims"]
    if isinstance(dims, str):
        dims = [dims]
    return list(dims)


def validate_k_threshold(k_threshold):
    """Validate the Pareto k threshold.

    Any finite real number is accepted, there is no upper bound.

    Returns
    -------
    float
    """
    if isinstance(k_threshold, bool) or not isinstance(k_threshold, int | float | np.number):
        raise ValidationError(f"k_threshold must be a real number but got {k_threshold!r}")
    if not np.isfinite(k_threshold):
        raise ValidationError(f"k_threshold must be finite but got {k_threshold}")
    return float(k_threshold)


def validate_n_workers(n_workers):
    """Validate the number of refit workers.

    Returns
    -------
    int
    """
    if isinstance(n_workers, bool) or not isinstance(n_workers, int | np.integer):
        raise ValidationError(f"n_workers must be an integer but got {n_workers!r}")
    if n_workers < 1:
        raise ValidationError(f"n_workers must be at least 1 but got {n_workers}")
    return int(n_workers)


def validate_timeout(timeout):
    """Validate `timeout` argument, None means no time limit."""
    if timeout is None:
        return None
    if isinstance(timeout, bool) or not isinstance(timeout, int | float | np.number):
        raise ValidationError(f"timeout must be a number or None but got {timeout!r}")
    if not timeout > 0:
        raise ValidationError(f"timeout must be positive but got {timeout}")
    return float(timeout)
