"""Compute exact Leave-One-Out cross validation refitting for problematic observations."""

import logging
import warnings
from copy import deepcopy
from dataclasses import replace

import numpy as np
from arviz_base import rcParams

from arviz_reloo.aggregate import Correction, merge_corrections
from arviz_reloo.config import RelooConfig
from arviz_reloo.consistency import check_consistency
from arviz_reloo.errors import ValidationError
from arviz_reloo.pointwise import elpd_refit, lpd_full, p_loo_refit
from arviz_reloo.scheduler import RefitScheduler, build_tasks, root_seed
from arviz_reloo.selection import obs_selectors, pareto_k_ids
from arviz_reloo.validate import validate_k_threshold

__all__ = ["reloo", "reloo_elpd"]

_log = logging.getLogger(__name__)


def reloo(
    wrapper,
    loo_orig,
    k_threshold=None,
    check=True,
    new_data=None,
    response_name=None,
    pointwise=None,
    config=None,
    **sample_kwargs,
):
    r"""Recalculate exact Leave-One-Out cross validation refitting where the approximation fails.

    PSIS-LOO-CV estimates Leave-One-Out (LOO) cross validation with Pareto Smoothed Importance
    Sampling. PSIS works well when the posterior and the posterior_i (excluding observation i
    from the data used to fit) are similar. For highly influential observations PSIS cannot
    approximate the LOO-CV, which shows up as a large Pareto shape.

    These cases typically have a handful of bad or very bad Pareto shapes and a majority of
    good or ok shapes. ``reloo`` keeps the PSIS values where the Pareto shape is below
    `k_threshold` and refits the model once per remaining observation, leaving it out, to
    compute its exact contribution. The totals and standard errors are then recomputed over
    all observations.

    Parameters
    ----------
    wrapper : SamplingWrapper
        An instance of a SamplingWrapper subclass implementing ``sample``,
        ``get_inference_data`` and ``log_likelihood__i``. Its ``idata_orig`` must hold the
        ``log_likelihood`` group of the original fit.
    loo_orig : ELPDData
        Existing LOO results with pointwise data and Pareto k values.
    k_threshold : float, optional
        Pareto shape threshold. Observations with k values above this threshold trigger
        a refit. Defaults to ``config.k_threshold`` (0.7).
    check : bool, default True
        Check that the response values of `wrapper` (or `new_data`) match the
        ``response_hash`` of `loo_orig`. Set to False to skip the check on false positives.
    new_data : Dataset, optional
        Observations to use instead of the ones stored in ``wrapper.idata_orig``.
    response_name : str, optional
        Name of the response variable in the observed data.
    pointwise : bool, optional
        If True, return pointwise LOO data. Defaults to
        ``rcParams["stats.ic_pointwise"]``.
    config : RelooConfig, optional
        Scheduling settings: number of workers, executor, seed, timeout...
    **sample_kwargs
        Forwarded to ``wrapper.sample`` on every refit.

    Returns
    -------
    ELPDData
        New LOO results where high Pareto k observations have been replaced with exact
        LOO-CV values from refitting and their Pareto k set to 0. `loo_orig` is unchanged.

    Raises
    ------
    ValidationError
        Wrong argument types or number of observations.
    ConsistencyError
        Response values of `wrapper` and `loo_orig` differ.
    MissingDiagnosticsError
        `loo_orig` has no pointwise Pareto k values.
    RefitError
        Any of the refits failed. No partial result is returned.

    Notes
    -----
    It is strongly recommended to first compute the PSIS-LOO-CV to confirm that the number
    of values above the threshold is small enough. Otherwise, prohibitive computation time
    may be needed to perform all required refits.

    Each refit gets a seed derived from a root seed and the position of the observation
    it leaves out, so results are reproducible whatever the number of workers. The root is
    ``config.seed``, else the seed passed to the sampler (``random_seed`` for most
    wrappers) in `sample_kwargs` or in ``wrapper.sample_kwargs``, else a fixed default.

    Warnings
    --------
    Refitting can be computationally expensive. Check the number of high Pareto k
    values before using ``reloo`` to ensure the computation time is acceptable.

    See Also
    --------
    reloo_elpd : Same computation with the loo estimate as first argument.

    References
    ----------

    .. [1] Vehtari et al. *Practical Bayesian model evaluation using leave-one-out cross-validation
        and WAIC*. Statistics and Computing. 27(5) (2017) https://doi.org/10.1007/s11222-016-9696-4
        arXiv preprint https://arxiv.org/abs/1507.04544.

    .. [2] Vehtari et al. *Pareto Smoothed Importance Sampling*.
        Journal of Machine Learning Research, 25(72) (2024) https://jmlr.org/papers/v25/19-556.html
        arXiv preprint https://arxiv.org/abs/1507.02646
    """
    return _reloo(
        wrapper,
        loo_orig,
        k_threshold=k_threshold,
        check=check,
        new_data=new_data,
        response_name=response_name,
        pointwise=pointwise,
        config=config,
        sample_kwargs=sample_kwargs,
    )


def reloo_elpd(loo_orig, wrapper, **kwargs):
    """Recalculate exact LOO-CV taking the loo estimate first.

    Same as :func:`reloo` with the first two arguments swapped.
    """
    return reloo(wrapper, loo_orig, **kwargs)


def _reloo(
    wrapper,
    loo_orig,
    k_threshold,
    check,
    new_data,
    response_name,
    pointwise,
    config,
    sample_kwargs,
):
    config = RelooConfig() if config is None else config
    if not isinstance(config, RelooConfig):
        raise ValidationError(f"config must be a RelooConfig, got {type(config).__name__}")
    k_threshold = config.k_threshold if k_threshold is None else validate_k_threshold(k_threshold)
    pointwise = rcParams["stats.ic_pointwise"] if pointwise is None else pointwise

    check_consistency(
        wrapper, loo_orig, new_data=new_data, response_name=response_name, check=check
    )

    positions = pareto_k_ids(loo_orig, k_threshold)
    n_refits = len(positions)
    if n_refits == 0:
        _log.info("No problematic observations found. Returning the original 'loo' object.")
        loo_refitted = deepcopy(loo_orig)
        if not pointwise:
            loo_refitted = _drop_pointwise(loo_refitted)
        return loo_refitted

    _log.info(
        "%d problematic observation(s) found. The model will be refit %d times.",
        n_refits,
        n_refits,
    )
    if n_refits > loo_orig.n_data_points / 2:
        warnings.warn(
            f"reloo will refit the model for {n_refits} out of {loo_orig.n_data_points} "
            f"observations with k_threshold={k_threshold}. This can take a very long time.",
            UserWarning,
            stacklevel=3,
        )

    tasks = build_tasks(
        loo_orig.pareto_k, positions, seed=root_seed(config.seed, wrapper, sample_kwargs)
    )
    selectors = [task.idx for task in tasks]
    hat_lpd = lpd_full(
        wrapper, loo_orig.pareto_k, positions, new_data=new_data, selectors=selectors
    )
    if loo_orig.p_loo_i is None:
        loo_orig = _with_p_loo_i(wrapper, loo_orig, new_data)

    wrapper.prepare()
    with RefitScheduler(
        wrapper,
        data=new_data,
        n_workers=config.n_workers,
        executor=config.executor,
        timeout=config.timeout,
        quiet=config.quiet,
        save_fits=config.save_fits,
        sample_kwargs=sample_kwargs,
    ) as scheduler:
        results = scheduler.run(tasks)

    elpd_loo = np.array([elpd_refit(results[position].log_lik) for position in positions])
    p_loo = p_loo_refit(hat_lpd, elpd_loo)
    corrections = {
        int(position): Correction(elpd=elpd_j, p=p_j)
        for position, elpd_j, p_j in zip(positions, elpd_loo, p_loo)
    }
    loo_refitted = merge_corrections(loo_orig, corrections, pointwise=pointwise)

    if config.save_fits:
        loo_refitted.refits = {position: result.idata for position, result in results.items()}

    return loo_refitted


def _with_p_loo_i(wrapper, loo_orig, new_data):
    """Copy of `loo_orig` with ``p_loo_i`` computed from the full posterior."""
    pareto_k = loo_orig.pareto_k
    obs_dims = list(pareto_k.dims)
    all_positions = np.arange(pareto_k.size)
    if new_data is None:
        lpd_i = lpd_full(wrapper, pareto_k)
    else:
        lpd_i = lpd_full(
            wrapper,
            pareto_k,
            all_positions,
            new_data=new_data,
            selectors=obs_selectors(pareto_k, all_positions),
        )
    elpd_i = loo_orig.elpd_i.transpose(*obs_dims)
    p_loo_i = elpd_i.copy(data=(lpd_i - elpd_i.values.reshape(-1)).reshape(elpd_i.shape))
    return replace(loo_orig, p_loo_i=p_loo_i)


def _drop_pointwise(loo_data):
    return replace(loo_data, elpd_i=None, p_loo_i=None, looic_i=None, pareto_k=None)
