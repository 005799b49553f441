"""Selection of the observations whose PSIS approximation is unreliable."""

import numpy as np

from arviz_reloo.errors import MissingDiagnosticsError
from arviz_reloo.validate import validate_k_threshold

__all__ = ["pareto_k_ids", "obs_selectors"]


def pareto_k_ids(loo_orig, k_threshold=0.7):
    """Flat positions of the observations with Pareto k above `k_threshold`.

    Parameters
    ----------
    loo_orig : ELPDData
        Pointwise loo results.
    k_threshold : float, default 0.7

    Returns
    -------
    ndarray of int
        Positions in ascending order, flattened in C order over the dimensions of
        ``loo_orig.pareto_k``. Missing (NaN) diagnostics are never selected.
    """
    k_threshold = validate_k_threshold(k_threshold)
    if loo_orig.pareto_k is None:
        raise MissingDiagnosticsError("No Pareto k estimates found in 'loo_orig'.")
    pareto_k = np.asarray(loo_orig.pareto_k.values, dtype=float).reshape(-1)
    return np.flatnonzero(pareto_k > k_threshold)


def obs_selectors(pareto_k, positions):
    """Convert flat positions to the observation selectors passed to a SamplingWrapper.

    With a single observation dimension the selector is the integer position itself,
    otherwise it is a ``{dim: coordinate value}`` dictionary.
    """
    obs_dims = list(pareto_k.dims)
    positions = np.asarray(positions, dtype=int)
    if len(obs_dims) == 1:
        return [int(pos) for pos in positions]
    unravelled = np.unravel_index(positions, [pareto_k.sizes[dim] for dim in obs_dims])
    selectors = []
    for i in range(len(positions)):
        selectors.append(
            {
                dim: pareto_k.coords[dim].values[unravelled[j][i]]
                if dim in pareto_k.coords
                else int(unravelled[j][i])
                for j, dim in enumerate(obs_dims)
            }
        )
    return selectors
