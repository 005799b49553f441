"""ArviZ reloo general utility functions."""

from dataclasses import dataclass, field

import numpy as np
import xarray as xr
from xarray import DataArray

from arviz_reloo.errors import ValidationError

__all__ = ["ELPDData", "get_log_likelihood"]


def get_log_likelihood(idata, var_name=None):
    """Retrieve the log likelihood dataarray of a given variable."""
    if not hasattr(idata, "log_likelihood"):
        raise ValidationError("log likelihood not found in inference data object")
    if var_name is None:
        var_names = list(idata.log_likelihood.data_vars)
        if len(var_names) > 1:
            raise ValidationError(
                f"Found several log likelihood arrays {var_names}, var_name cannot be None"
            )
        return idata.log_likelihood[var_names[0]]
    try:
        log_likelihood = idata.log_likelihood[var_name]
    except KeyError as err:
        raise ValidationError(f"No log likelihood data named {var_name} found") from err
    return log_likelihood


def stack_obs(da, obs_dims):
    """Flatten `obs_dims` of `da` into a single trailing ``__obs__`` dimension.

    Flat positions follow C order over `obs_dims`, matching ``np.ravel``.
    """
    return da.stack(__obs__=obs_dims).transpose(..., "__obs__")


def replace_flat(da, obs_dims, positions, values):
    """Return a copy of `da` with the elements at flat `positions` replaced by `values`."""
    da = da.transpose(*obs_dims)
    new_values = np.array(da.values, dtype=float).reshape(-1)
    new_values[np.asarray(positions, dtype=int)] = values
    return da.copy(data=new_values.reshape(da.shape))


BASE_FMT = """Computed from {{n_samples}} posterior samples and \
{{n_points}} observations log-likelihood matrix.

{{0:{0}}} Estimate       SE
{{scale}}_{{kind}} {{ic_value:8.2f}}  {{ic_se:>7}}
p_{{kind:{1}}} {{p_value:8.2f}}  {{p_se:>7}}
{{ic_name:{0}}} {{looic:>8}}  {{looic_se:>7}}"""
POINTWISE_LOO_FMT = """------

Pareto k diagnostic values:
                         {{0:>{0}}} {{1:>6}}
(-Inf, {{8:.2f}}]   (good)     {{2:{0}d}} {{5:6.1f}}%
   ({{8:.2f}}, 1]   (bad)      {{3:{0}d}} {{6:6.1f}}%
    (1, Inf)   (very bad) {{4:{0}d}} {{7:6.1f}}%
"""
SCALE_DICT = {"deviance": "deviance", "log": "elpd", "negative_log": "-elpd"}


def _fmt(value, fmt="7.2f"):
    if value is None:
        return "-"
    return format(value, fmt)


@dataclass
class ELPDData:  # pylint: disable=too-many-instance-attributes
    """Class to contain the data from a loo estimate and its exact refit corrections.

    The pointwise table is made of ``elpd_i``, ``p_loo_i``, ``looic_i`` and ``pareto_k``,
    all sharing the same observation dimensions. ``response_hash`` is a fingerprint of the
    observed values the estimate was computed for, see :func:`arviz_reloo.hash_response`.
    """

    kind: str
    elpd: float
    se: float
    p: float
    n_samples: int
    n_data_points: int
    scale: str
    warning: bool
    good_k: float
    elpd_i: DataArray = None
    pareto_k: DataArray = None
    p_loo_i: DataArray = None
    looic_i: DataArray = None
    p_se: float = None
    looic: float = None
    looic_se: float = None
    response_hash: str = None
    attrs: dict = field(default_factory=dict)
    refits: dict = None

    @property
    def pointwise(self):
        """Pointwise table as a :class:`~xarray.Dataset`, None without pointwise data."""
        if self.elpd_i is None:
            return None
        columns = {
            "elpd_loo": self.elpd_i,
            "p_loo": self.p_loo_i,
            "looic": self.looic_i,
            "pareto_k": self.pareto_k,
        }
        return xr.Dataset({name: da for name, da in columns.items() if da is not None})

    def __str__(self):
        """Print elpd data in a user friendly way."""
        kind = self.kind
        scale_str = SCALE_DICT[self["scale"]]
        padding = len(scale_str) + len(kind) + 1

        base = BASE_FMT.format(padding, padding - 2)
        base = base.format(
            "",
            kind=kind,
            scale=scale_str,
            n_samples=self.n_samples,
            n_points=self.n_data_points,
            ic_value=self.elpd,
            ic_se=_fmt(self.se),
            p_value=self.p,
            ic_name=f"{kind}ic",
            p_se=_fmt(self.p_se),
            looic=_fmt(self.looic, "8.2f"),
            looic_se=_fmt(self.looic_se),
        )

        if self.warning:
            base += "\n\nThere has been a warning during the calculation. Please check the results."

        if self.refits:
            base += f"\n\nExact refits stored for {len(self.refits)} observations."

        if kind == "loo" and self.pareto_k is not None:
            bins = np.asarray([-np.inf, self.good_k, 1, np.inf])
            counts, *_ = np.histogram(self.pareto_k, bins=bins, density=False)
            extended = POINTWISE_LOO_FMT.format(max(4, len(str(np.max(counts)))))
            extended = extended.format(
                "Count",
                "Pct.",
                *[*counts, *(counts / np.sum(counts) * 100)],
                self.good_k,
            )
            base = "\n".join([base, extended])

        return base

    def __repr__(self):
        """Alias to ``__str__``."""
        return self.__str__()

    def __getitem__(self, key):
        """Define getitem magic method."""
        return getattr(self, key)

    def __setitem__(self, key, item):
        """Define setitem magic method."""
        setattr(self, key, item)
