"""Explicit configuration for exact LOO refits."""

from concurrent.futures import Executor
from dataclasses import dataclass

from arviz_reloo.errors import ValidationError
from arviz_reloo.validate import validate_k_threshold, validate_n_workers, validate_timeout

__all__ = ["RelooConfig"]


@dataclass(frozen=True)
class RelooConfig:
    """Settings controlling which observations are refit and how refits are scheduled.

    Parameters
    ----------
    k_threshold : float, default 0.7
        Pareto k threshold. Observations with k values above it are refit.
    n_workers : int, default 1
        Number of refits running at the same time. The default runs them one after another.
    executor : concurrent.futures.Executor, optional
        Executor to submit refits to instead of an internal thread pool.
        It is owned by the caller and never shut down by ``reloo``.
    seed : int or numpy.random.SeedSequence, optional
        Root seed. Each refit receives a seed derived from it and from the
        position of the observation it leaves out. Defaults to the seed passed to the
        sampler through the sampling kwargs, or to a fixed value when there is none.
    timeout : float, optional
        Deadline in seconds for the whole batch of refits, not for each refit. It starts
        when the batch is joined. Exceeding it counts as a refit failure.
    quiet : bool, default True
        Silence the sampler and its warnings during refits. Warnings are filtered with
        :func:`warnings.catch_warnings`, see :meth:`arviz_reloo.RefitScheduler.run`.
    save_fits : bool, default False
        Keep the refit inference data in the ``refits`` attribute of the result.
    """

    k_threshold: float = 0.7
    n_workers: int = 1
    executor: Executor = None
    seed: object = None
    timeout: float = None
    quiet: bool = True
    save_fits: bool = False

    def __post_init__(self):
        object.__setattr__(self, "k_threshold", validate_k_threshold(self.k_threshold))
        object.__setattr__(self, "n_workers", validate_n_workers(self.n_workers))
        object.__setattr__(self, "timeout", validate_timeout(self.timeout))
        if self.executor is not None and not isinstance(self.executor, Executor):
            raise ValidationError(
                "executor must be a concurrent.futures.Executor instance, "
                f"got {type(self.executor).__name__}"
            )
