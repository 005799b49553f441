"""Exact refitting for observations where PSIS-LOO-CV is unreliable."""

from arviz_reloo.aggregate import Correction, make_elpd_data, merge_corrections
from arviz_reloo.config import RelooConfig
from arviz_reloo.consistency import check_consistency, hash_response
from arviz_reloo.errors import (
    ConsistencyError,
    MissingDiagnosticsError,
    RefitError,
    RelooError,
    ValidationError,
)
from arviz_reloo.pointwise import log_mean_exp
from arviz_reloo.reloo import reloo, reloo_elpd
from arviz_reloo.scheduler import RefitScheduler
from arviz_reloo.selection import pareto_k_ids
from arviz_reloo.utils import ELPDData
from arviz_reloo.wrapper import SamplingWrapper

__version__ = "0.1.0"

__all__ = [
    "reloo",
    "reloo_elpd",
    "RelooConfig",
    "ELPDData",
    "SamplingWrapper",
    "RefitScheduler",
    "Correction",
    "make_elpd_data",
    "merge_corrections",
    "check_consistency",
    "hash_response",
    "pareto_k_ids",
    "log_mean_exp",
    "RelooError",
    "ValidationError",
    "ConsistencyError",
    "MissingDiagnosticsError",
    "RefitError",
]
