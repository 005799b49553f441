"""Pointwise log predictive densities from refit and full posteriors."""

import numpy as np
import xarray as xr
from scipy.special import logsumexp as _np_logsumexp
from xarray_einstats.stats import logsumexp

from arviz_reloo.validate import validate_dims

__all__ = ["log_mean_exp", "elpd_refit", "lpd_full", "p_loo_refit"]


def log_mean_exp(values, dims=None):
    r"""Compute :math:`\log \frac{1}{n} \sum_s \exp(x_s)` in a numerically stable way.

    The maximum is subtracted before exponentiating and added back after the logarithm,
    so large magnitude log densities neither overflow nor underflow.

    Parameters
    ----------
    values : DataArray or array_like
    dims : str or sequence of hashable, optional
        Dimensions to reduce for DataArrays or axes for arrays. Defaults to all of them.

    Returns
    -------
    DataArray or ndarray or float
    """
    if isinstance(values, xr.DataArray):
        dims = list(values.dims) if dims is None else validate_dims(dims)
        n_samples = int(np.prod([values.sizes[dim] for dim in dims]))
        return logsumexp(values, dims=dims) - np.log(n_samples)
    values = np.asarray(values, dtype=float)
    if dims is None:
        return _np_logsumexp(values) - np.log(values.size)
    axes = tuple(np.atleast_1d(dims))
    n_samples = int(np.prod([values.shape[axis] for axis in axes]))
    return _np_logsumexp(values, axis=axes) - np.log(n_samples)


def elpd_refit(log_lik):
    """Exact elpd of a single held out observation from its leave-out log likelihood draws.

    Every dimension of `log_lik` is reduced, leftover length 1 observation
    dimensions included.
    """
    elpd = log_mean_exp(log_lik)
    if isinstance(elpd, xr.DataArray):
        return elpd.item()
    return float(elpd)


def lpd_full(wrapper, pareto_k, positions=None, sample_dims=None, new_data=None, selectors=None):
    """Log predictive density of observations under the full, non refit, posterior.

    Parameters
    ----------
    wrapper : SamplingWrapper
    pareto_k : DataArray
        Pareto k values of the loo estimate, only used for the observation dims order.
    positions : array_like of int, optional
        Flat positions to evaluate. Defaults to all observations.
    sample_dims : list of str, optional
    new_data : Dataset, optional
        When provided, the log likelihood of the selected observations in `new_data` is
        evaluated on the original posterior with ``wrapper.log_likelihood__i``. The
        stored ``log_likelihood`` group is used otherwise.
    selectors : list, optional
        Observation selectors matching `positions`, needed with `new_data`.

    Returns
    -------
    ndarray
        One value per position.
    """
    sample_dims = validate_dims(sample_dims)
    if new_data is None:
        log_lik = wrapper.log_likelihood(
            positions=positions, sample_dims=sample_dims, obs_dims=list(pareto_k.dims)
        )
        return np.asarray(log_mean_exp(log_lik, dims=sample_dims).values, dtype=float)

    if selectors is None:
        raise ValueError("selectors are required to evaluate new_data on the full posterior")
    lpd = []
    for idx in selectors:
        _, excluded_obs = wrapper.sel_observations(idx, data=new_data)
        lpd.append(elpd_refit(wrapper.log_likelihood__i(excluded_obs, wrapper.idata_orig)))
    return np.array(lpd, dtype=float)


def p_loo_refit(lpd, elpd):
    """Effective number of parameters of each observation, ``lpd - elpd``."""
    return np.asarray(lpd, dtype=float) - np.asarray(elpd, dtype=float)
