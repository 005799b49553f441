"""Merge exact refit values into a loo estimate."""

from collections import namedtuple
from copy import deepcopy
from dataclasses import replace

import numpy as np

from arviz_reloo.errors import MissingDiagnosticsError, ValidationError
from arviz_reloo.utils import ELPDData, replace_flat

__all__ = ["Correction", "make_elpd_data", "merge_corrections", "summarize_pointwise"]

Correction = namedtuple("Correction", ["elpd", "p"])


def summarize_pointwise(values):
    """Total and standard error of a pointwise column.

    The standard error is :math:`\\sqrt{N \\operatorname{Var}(x)}` with the sample
    variance (``ddof=1``), NaN when there is a single observation.

    Returns
    -------
    total : float
    se : float
    """
    values = np.asarray(values, dtype=float).reshape(-1)
    n_data_points = values.size
    total = float(np.sum(values))
    if n_data_points < 2:
        return total, np.nan
    return total, float(np.sqrt(n_data_points * np.var(values, ddof=1)))


def _good_k(n_samples):
    return min(1 - 1 / np.log10(n_samples), 0.7) if n_samples > 1 else 0.7


def make_elpd_data(
    elpd_i,
    pareto_k,
    n_samples,
    p_loo_i=None,
    good_k=None,
    response_hash=None,
    attrs=None,
):
    """Build a consistent :class:`ELPDData` from pointwise loo values.

    Parameters
    ----------
    elpd_i, pareto_k : DataArray
        Pointwise elpd and Pareto k values, with the same observation dimensions.
    n_samples : int
        Number of posterior samples used to compute them.
    p_loo_i : DataArray, optional
        Pointwise effective number of parameters.
    good_k : float, optional
        Pareto k threshold for the warning flag. Defaults to
        :math:`\\min(1 - 1/\\log_{10}(S), 0.7)`.
    response_hash : str, optional
        Fingerprint of the response, see :func:`arviz_reloo.hash_response`.
    attrs : dict, optional
        Metadata passed through every correction.
    """
    if elpd_i.sizes != pareto_k.sizes:
        raise ValidationError("elpd_i and pareto_k must have the same dimensions and sizes")
    if p_loo_i is not None and p_loo_i.sizes != elpd_i.sizes:
        raise ValidationError("p_loo_i and elpd_i must have the same dimensions and sizes")
    good_k = _good_k(n_samples) if good_k is None else good_k
    looic_i = -2 * elpd_i
    elpd, elpd_se = summarize_pointwise(elpd_i.values)
    looic, looic_se = summarize_pointwise(looic_i.values)
    if p_loo_i is None:
        p_loo, p_se = np.nan, None
    else:
        p_loo, p_se = summarize_pointwise(p_loo_i.values)
    return ELPDData(
        kind="loo",
        elpd=elpd,
        se=elpd_se,
        p=p_loo,
        p_se=p_se,
        looic=looic,
        looic_se=looic_se,
        n_samples=n_samples,
        n_data_points=int(elpd_i.size),
        scale="log",
        warning=bool(np.any(pareto_k.values > good_k)),
        good_k=good_k,
        elpd_i=elpd_i,
        pareto_k=pareto_k,
        p_loo_i=p_loo_i,
        looic_i=looic_i,
        response_hash=response_hash,
        attrs={} if attrs is None else dict(attrs),
    )


def merge_corrections(loo_orig, corrections, pointwise=True):
    """Replace the pointwise values of corrected observations and recompute the summaries.

    Parameters
    ----------
    loo_orig : ELPDData
        Estimate with pointwise ``elpd_i``, ``p_loo_i`` and ``pareto_k``. It is not modified.
    corrections : mapping of {int : Correction}
        Exact ``elpd`` and ``p`` values keyed by flat observation position.
    pointwise : bool, default True
        Keep the pointwise table in the returned object.

    Returns
    -------
    ELPDData
        New estimate where the corrected rows have ``looic_i = -2 elpd_i`` and
        ``pareto_k = 0``, and every total and standard error covers all rows.
    """
    if loo_orig.elpd_i is None or loo_orig.pareto_k is None or loo_orig.p_loo_i is None:
        raise MissingDiagnosticsError(
            "merge_corrections requires pointwise elpd_i, p_loo_i and pareto_k values"
        )
    obs_dims = list(loo_orig.pareto_k.dims)
    positions = sorted(int(position) for position in corrections)
    n_data_points = loo_orig.pareto_k.size
    if positions and not 0 <= positions[0] <= positions[-1] < n_data_points:
        raise ValidationError(
            f"Correction positions must be between 0 and {n_data_points - 1}, got {positions}"
        )
    elpd_values = [corrections[position].elpd for position in positions]
    p_values = [corrections[position].p for position in positions]

    elpd_i = replace_flat(loo_orig.elpd_i, obs_dims, positions, elpd_values)
    p_loo_i = replace_flat(loo_orig.p_loo_i, obs_dims, positions, p_values)
    pareto_k = replace_flat(loo_orig.pareto_k, obs_dims, positions, 0.0)
    looic_i = -2 * elpd_i
    good_k = _good_k(loo_orig.n_samples) if loo_orig.good_k is None else loo_orig.good_k

    elpd, elpd_se = summarize_pointwise(elpd_i.values)
    p_loo, p_se = summarize_pointwise(p_loo_i.values)
    looic, looic_se = summarize_pointwise(looic_i.values)

    return replace(
        loo_orig,
        elpd=elpd,
        se=elpd_se,
        p=p_loo,
        p_se=p_se,
        looic=looic,
        looic_se=looic_se,
        warning=bool(np.any(pareto_k.values > good_k)),
        elpd_i=elpd_i if pointwise else None,
        p_loo_i=p_loo_i if pointwise else None,
        looic_i=looic_i if pointwise else None,
        pareto_k=pareto_k if pointwise else None,
        attrs=deepcopy(loo_orig.attrs),
    )
