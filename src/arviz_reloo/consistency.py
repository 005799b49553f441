"""Checks that a loo estimate and a sampling wrapper refer to the same data."""

import hashlib

import numpy as np
import xarray as xr

from arviz_reloo.errors import ConsistencyError, MissingDiagnosticsError, ValidationError
from arviz_reloo.utils import ELPDData
from arviz_reloo.wrapper import SamplingWrapper

__all__ = ["check_consistency", "get_response", "hash_response"]

REQUIRED_METHODS = ["sel_observations", "sample", "get_inference_data", "log_likelihood__i"]


def hash_response(values):
    """Fingerprint of the response values.

    Numeric values are converted to float64 first, so integer and float encodings of the
    same observations share the fingerprint. Coordinates and names are ignored.

    Parameters
    ----------
    values : DataArray, Dataset or array_like
        Response values. A Dataset must hold a single variable.

    Returns
    -------
    str
        Hexadecimal SHA-256 digest.
    """
    if isinstance(values, xr.Dataset):
        if len(values.data_vars) != 1:
            raise ValidationError(
                "hash_response needs a single response variable, "
                f"got {list(values.data_vars)}"
            )
        values = next(iter(values.data_vars.values()))
    if isinstance(values, xr.DataArray):
        values = values.values
    values = np.asarray(values)
    if values.dtype.kind in "biuf":
        values = values.astype(np.float64)
    else:
        values = values.astype(str)
    digest = hashlib.sha256()
    digest.update(repr(values.shape).encode())
    digest.update(values.dtype.kind.encode())
    digest.update(np.ascontiguousarray(values).tobytes())
    return digest.hexdigest()


def get_response(wrapper, data=None, response_name=None):
    """Get the response variable used to fit the model or provided as new data.

    The variable is chosen by `response_name`, then ``wrapper.observed_var_name``, then as
    the only variable of the observed data, and last as the variable sharing its name with
    the log likelihood variable.
    """
    if data is None:
        idata = wrapper.idata_orig
        if idata is None or "observed_data" not in idata.children:
            raise ValidationError(
                "No observed data found. Provide new_data or an observed_data group "
                "in the wrapper's idata_orig."
            )
        data = idata["observed_data"].to_dataset()
    if isinstance(data, xr.DataArray):
        return data

    name = response_name if response_name is not None else wrapper.observed_var_name
    if name is None:
        var_names = list(data.data_vars)
        if len(var_names) == 1:
            name = var_names[0]
        elif wrapper.log_lik_var_name in var_names:
            name = wrapper.log_lik_var_name
        else:
            raise ValidationError(
                f"Found several response candidates {var_names}, response_name cannot be None"
            )
    if name not in data.data_vars:
        raise ValidationError(f"Response variable '{name}' not found in the observed data")
    return data[name]


def check_consistency(wrapper, loo_orig, new_data=None, response_name=None, check=True):
    """Validate that `loo_orig` was computed from the model and data behind `wrapper`.

    Parameters
    ----------
    wrapper : SamplingWrapper
    loo_orig : ELPDData
    new_data : Dataset, optional
        Observations to use instead of those stored in the wrapper.
    response_name : str, optional
        Name of the response variable, see :func:`get_response`.
    check : bool, default True
        Compare the response fingerprint against ``loo_orig.response_hash``.

    Raises
    ------
    ValidationError
        Wrong argument types, missing wrapper methods or mismatched number of observations.
    ConsistencyError
        The response values do not match the ones used to compute `loo_orig`.
    MissingDiagnosticsError
        `loo_orig` has no pointwise Pareto k values.
    """
    if not isinstance(wrapper, SamplingWrapper):
        raise ValidationError(
            "wrapper must be an instance of SamplingWrapper or a subclass. "
            "See the SamplingWrapper documentation for implementation details."
        )
    if not isinstance(loo_orig, ELPDData):
        raise ValidationError("loo_orig must be an ELPDData object.")

    not_implemented = wrapper.check_implemented_methods(REQUIRED_METHODS)
    if not_implemented:
        raise ValidationError(
            "Passed wrapper instance does not implement all methods required for reloo "
            f"to work. Check the documentation of SamplingWrapper. {not_implemented} must be "
            "implemented and were not found."
        )
    if loo_orig.scale != "log":
        raise ValidationError(f"loo_orig must be on the log scale, got scale='{loo_orig.scale}'")
    if loo_orig.pareto_k is None or loo_orig.elpd_i is None:
        raise MissingDiagnosticsError(
            "No Pareto k estimates found in 'loo_orig'. reloo requires pointwise LOO results "
            "with Pareto k values, please compute the initial LOO with pointwise=True."
        )

    response = get_response(wrapper, data=new_data, response_name=response_name)
    n_rows = loo_orig.elpd_i.size
    if response.size != n_rows:
        raise ValidationError(
            f"Number of observations in 'loo_orig' ({n_rows}) and in the response "
            f"'{response.name}' ({response.size}) do not match."
        )

    if check and hash_response(response) != loo_orig.response_hash:
        raise ConsistencyError(
            "Response values used in 'loo_orig' and 'wrapper' do not match. "
            "If this is a false positive, please set check=False."
        )
