"""Base class for sampling wrappers."""

import xarray as xr
from arviz_base import convert_to_datatree

from arviz_reloo.utils import get_log_likelihood, stack_obs
from arviz_reloo.validate import validate_dims

__all__ = ["SamplingWrapper"]


class SamplingWrapper:
    """Class wrapping sampling routines for its usage via ArviZ.

    Using a common class, all inference backends can be supported in ArviZ. Hence, statistical
    functions requiring refitting like :func:`arviz_reloo.reloo` can be implemented
    once and then used with any inference backend.

    Subclasses must implement :meth:`sample`, :meth:`get_inference_data` and
    :meth:`log_likelihood__i`. :meth:`sel_observations` has a default implementation for
    data with a single observation dimension.

    Parameters
    ----------
    model
        The model object used for sampling.
    idata_orig : DataTree or InferenceData, optional
        Original inference data object. It must contain the ``log_likelihood`` group
        and, for the default :meth:`sel_observations`, the ``observed_data`` group.
    log_lik_var_name : str, optional
        Name of the variable in the ``log_likelihood`` group.
    observed_var_name : str, optional
        Name of the response variable in the ``observed_data`` group.
    sample_kwargs : dict, optional
        Sampling kwargs, forwarded to :meth:`sample` on every refit.

    Attributes
    ----------
    seed_kwarg : str
        Name of the keyword argument of :meth:`sample` receiving the per refit seed.
    quiet_kwargs : dict
        Keyword arguments merged into the sampling kwargs to silence the sampler
        (progress bars, refresh rate...) when refits run quietly.
    """

    seed_kwarg = "random_seed"
    quiet_kwargs = {}

    def __init__(
        self,
        model,
        idata_orig=None,
        log_lik_var_name=None,
        observed_var_name=None,
        sample_kwargs=None,
    ):
        self.model = model
        self.idata_orig = None if idata_orig is None else convert_to_datatree(idata_orig)
        self.log_lik_var_name = log_lik_var_name
        self.observed_var_name = observed_var_name
        self.sample_kwargs = {} if sample_kwargs is None else dict(sample_kwargs)

    @property
    def observations(self):
        """Observation dataset of the original fit.

        Merges the ``observed_data`` and ``constant_data`` groups so that per observation
        auxiliary data is split together with the response.
        """
        if self.idata_orig is None or "observed_data" not in self.idata_orig.children:
            return None
        groups = [self.idata_orig["observed_data"].to_dataset()]
        if "constant_data" in self.idata_orig.children:
            groups.append(self.idata_orig["constant_data"].to_dataset())
        return xr.merge(groups, compat="override", join="outer")

    def prepare(self):
        """Prepare the model before refitting, called once per batch of refits.

        Override to compile the model program so every refit reuses it.
        """

    def sel_observations(self, idx, data=None):
        """Select a subset of the observations in the original dataset.

        Parameters
        ----------
        idx : int or dict
            Position of the excluded observation, or ``{dim: coordinate}`` mapping when
            there are several observation dimensions.
        data : Dataset, optional
            Observations to split. Defaults to :attr:`observations`.

        Returns
        -------
        modified_observed_data : Dataset
            All observations except `idx`, together with their auxiliary data.
        excluded_observed_data : Dataset
            The excluded observation only.
        """
        data = self.observations if data is None else data
        if data is None:
            raise NotImplementedError(
                "sel_observations needs an observed_data group in idata_orig or "
                "a custom implementation"
            )
        if isinstance(idx, dict):
            raise NotImplementedError(
                "The default sel_observations only handles a single observation dimension, "
                "override it for multidimensional observations"
            )
        obs_dim = self._obs_dims(data)[0]
        modified_observed_data = data.drop_isel({obs_dim: idx})
        excluded_observed_data = data.isel({obs_dim: [idx]})
        return modified_observed_data, excluded_observed_data

    def sample(self, modified_observed_data, **sample_kwargs):
        """Sample from the model on the modified observed data.

        Parameters
        ----------
        modified_observed_data : any
            Observed data as returned by :meth:`sel_observations`.
        **sample_kwargs
            :attr:`sample_kwargs` merged with the per refit overrides, including the seed
            under the name given by :attr:`seed_kwarg`.

        Returns
        -------
        fitted_model
            Result of the sampling, in any format understood by :meth:`get_inference_data`.
        """
        raise NotImplementedError("sample method must be implemented for each subclass")

    def get_inference_data(self, fitted_model):
        """Convert the fitted model to a DataTree."""
        raise NotImplementedError(
            "get_inference_data method must be implemented for each subclass"
        )

    def log_likelihood__i(self, excluded_obs, idata__i):
        """Get the log likelihood samples :math:`\\log p_{post(-i)}(y_i)`.

        Parameters
        ----------
        excluded_obs : any
            Excluded observations as returned by :meth:`sel_observations`.
        idata__i : DataTree
            Inference results of refitting the data excluding `excluded_obs`.

        Returns
        -------
        log_likelihood : DataArray
            Log likelihood of `excluded_obs` evaluated at each of the posterior samples
            stored in `idata__i`.
        """
        raise NotImplementedError("log_likelihood__i method must be implemented for each subclass")

    def refit(self, idx, data=None, **sample_kwargs):
        """Refit the model leaving out the observation `idx`.

        Returns
        -------
        idata__i : DataTree
            Inference data of the new fit, independent of the original one.
        excluded_obs
            The excluded observation, ready for :meth:`log_likelihood__i`.
        """
        modified_obs, excluded_obs = self.sel_observations(idx, data=data)
        fitted_model = self.sample(modified_obs, **{**self.sample_kwargs, **sample_kwargs})
        return self.get_inference_data(fitted_model), excluded_obs

    def log_likelihood(self, positions=None, sample_dims=None, obs_dims=None):
        """Log likelihood of the original fit with observation dims stacked as ``__obs__``.

        Parameters
        ----------
        positions : array_like of int, optional
            Flat observation positions to keep. Defaults to all of them.
        sample_dims : list of str, optional
        obs_dims : list of str, optional
            Order in which observation dims are flattened. Defaults to their order in the
            log likelihood array.
        """
        if self.idata_orig is None:
            raise NotImplementedError("log_likelihood requires idata_orig")
        sample_dims = validate_dims(sample_dims)
        log_lik = get_log_likelihood(self.idata_orig, self.log_lik_var_name)
        if obs_dims is None:
            obs_dims = [dim for dim in log_lik.dims if dim not in sample_dims]
        log_lik = stack_obs(log_lik, obs_dims)
        if positions is not None:
            log_lik = log_lik.isel(__obs__=list(positions))
        return log_lik

    def check_implemented_methods(self, methods):
        """Check that all methods listed are implemented.

        Not all functions that require refitting need to have all the methods implemented in
        order to work properly. This function should be used before using the SamplingWrapper and
        its subclasses to get informative error messages.

        Parameters
        ----------
        methods : list
            Check all elements in methods are implemented.

        Returns
        -------
        list
            List containing the methods not implemented.
        """
        supported_methods = (
            "sel_observations",
            "sample",
            "get_inference_data",
            "log_likelihood__i",
            "prepare",
        )
        bad_methods = [method for method in methods if method not in supported_methods]
        if bad_methods:
            raise ValueError(
                f"Not all method(s) in {bad_methods} supported. "
                f"Supported methods in SamplingWrapper subclasses are: {list(supported_methods)}"
            )

        # sel_observations and prepare have usable defaults
        return [
            method
            for method in methods
            if method not in ("sel_observations", "prepare")
            and getattr(type(self), method) is getattr(SamplingWrapper, method)
        ]

    def _obs_dims(self, data):
        if self.observed_var_name is not None and self.observed_var_name in data:
            dims = list(data[self.observed_var_name].dims)
        else:
            dims = list(next(iter(data.data_vars.values())).dims)
        if len(dims) != 1:
            raise NotImplementedError(
                f"The default sel_observations only handles a single observation dimension, "
                f"found {dims}"
            )
        return dims
