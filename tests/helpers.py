# pylint: disable=redefined-outer-name
"""Test related helper functions."""

import os
import sys
import threading
import warnings
from typing import Any

import numpy as np
import pytest


def importorskip(modname: str, reason: str | None = None) -> Any:
    """Import and return the requested module ``modname``.

    Doesn't allow skips when ``ARVIZ_REQUIRE_ALL_DEPS`` env var is defined.
    Borrowed and modified from ``pytest.importorskip``.

    Parameters
    ----------
    modname : str
        the name of the module to import
    reason : str, optional
        this reason is shown as skip message when the module cannot be imported.
    """
    __tracebackhide__ = True  # pylint: disable=unused-variable
    compile(modname, "", "eval")  # to catch syntaxerrors

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            __import__(modname)
        except ImportError as exc:
            if "ARVIZ_REQUIRE_ALL_DEPS" in os.environ:
                raise exc
            if reason is None:
                reason = f"could not import {modname!r}: {exc}"
            pytest.skip(reason, allow_module_level=True)

    mod = sys.modules[modname]
    return mod


PARETO_K = np.array([0.1, 0.2, 0.9, 0.3, 0.4, 0.2, 0.8, 0.1, 0.3, 0.2])


def create_normal_model(n_obs=10, seed=10, nchains=4, ndraws=100):
    """Create a normal model fit with fake draws and per observation constant data."""
    from arviz_base import from_dict

    rng = np.random.default_rng(seed)
    y = rng.normal(1.0, 1.0, size=n_obs)
    x = np.linspace(0, 1, n_obs)
    mu = rng.normal(y.mean(), 1 / np.sqrt(n_obs), size=(nchains, ndraws))
    log_lik = -0.5 * np.log(2 * np.pi) - 0.5 * (y[None, None, :] - mu[..., None]) ** 2
    return from_dict(
        {
            "posterior": {"mu": mu},
            "log_likelihood": {"y": log_lik},
            "observed_data": {"y": y},
            "constant_data": {"x": x},
        },
        dims={"y": ["obs_id"], "x": ["obs_id"]},
    )


def create_loo_data(idata, pareto_k=None, seed=3, with_p_loo=True, with_hash=True):
    """Create an approximate loo estimate for `idata` with the given Pareto k values."""
    import xarray as xr

    from arviz_reloo import hash_response, make_elpd_data

    rng = np.random.default_rng(seed)
    n_obs = idata.observed_data["y"].size
    pareto_k = PARETO_K if pareto_k is None else np.asarray(pareto_k)
    coords = {"obs_id": np.arange(n_obs)}
    elpd_i = xr.DataArray(rng.normal(-1.4, 0.3, size=n_obs), dims=["obs_id"], coords=coords)
    p_loo_i = xr.DataArray(rng.uniform(0, 0.2, size=n_obs), dims=["obs_id"], coords=coords)
    return make_elpd_data(
        elpd_i=elpd_i,
        pareto_k=xr.DataArray(pareto_k, dims=["obs_id"], coords=coords),
        n_samples=400,
        p_loo_i=p_loo_i if with_p_loo else None,
        response_hash=hash_response(idata.observed_data["y"]) if with_hash else None,
        attrs={"model": "normal"},
    )


def make_wrapper_classes():
    """Build the SamplingWrapper subclasses used by the tests."""
    from arviz_base import from_dict
    from xarray import DataArray

    from arviz_reloo import SamplingWrapper

    class NormalWrapper(SamplingWrapper):
        """Conjugate-ish normal model sampled with numpy."""

        quiet_kwargs = {"progressbar": False}

        def __init__(self, idata, fail_on=None, **kwargs):
            super().__init__(
                model=None, idata_orig=idata, log_lik_var_name="y", observed_var_name="y", **kwargs
            )
            self.fail_on = set() if fail_on is None else set(fail_on)
            self.sample_calls = []
            self.prepared = 0
            self._lock = threading.Lock()

        def prepare(self):
            self.prepared += 1

        def sample(self, modified_observed_data, random_seed=None, progressbar=True, **kwargs):
            with self._lock:
                self.sample_calls.append(
                    {
                        "n_obs": modified_observed_data["y"].size,
                        "random_seed": random_seed,
                        "progressbar": progressbar,
                        **kwargs,
                    }
                )
            excluded = set(range(self.idata_orig.observed_data["y"].size)) - set(
                modified_observed_data["obs_id"].values.tolist()
            )
            if excluded & self.fail_on:
                raise RuntimeError("sampler diverged")
            rng = np.random.default_rng(random_seed)
            y = modified_observed_data["y"].values
            return {"mu": rng.normal(y.mean(), 1 / np.sqrt(y.size), size=(2, 50))}

        def get_inference_data(self, fitted_model):
            return from_dict({"posterior": {"mu": fitted_model["mu"]}})

        def log_likelihood__i(self, excluded_obs, idata__i):
            mu = idata__i.posterior["mu"]
            y = excluded_obs["y"].values[0]
            return -0.5 * np.log(2 * np.pi) - 0.5 * (y - mu) ** 2

    class ZeroLogLikWrapper(NormalWrapper):
        """Wrapper whose leave-out log likelihood draws are all zero."""

        def log_likelihood__i(self, excluded_obs, idata__i):
            return DataArray(np.zeros((2, 50)), dims=["chain", "draw"])

    return NormalWrapper, ZeroLogLikWrapper
