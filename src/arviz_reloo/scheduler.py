"""Parallel scheduling of leave-one-out refits."""

import logging
import sys
import warnings
from collections import namedtuple
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

import numpy as np

from arviz_reloo.errors import RefitError, ValidationError
from arviz_reloo.selection import obs_selectors
from arviz_reloo.validate import validate_n_workers, validate_timeout

__all__ = ["RefitTask", "RefitResult", "RefitScheduler", "build_tasks", "root_seed", "task_seeds"]

_log = logging.getLogger(__name__)

_CONTEXT_AWARE_WARNINGS = bool(getattr(sys.flags, "context_aware_warnings", False))

RefitTask = namedtuple("RefitTask", ["position", "idx", "seed"])

RefitResult = namedtuple("RefitResult", ["position", "log_lik", "idata"])

DEFAULT_ROOT_SEED = 0


def root_seed(seed, wrapper, sample_kwargs=None):
    """Root seed of a batch of refits.

    An explicit `seed` wins. Otherwise the seed given to the sampler under
    ``wrapper.seed_kwarg`` is used, first from `sample_kwargs` and then from
    ``wrapper.sample_kwargs``. Without any of them the root is ``DEFAULT_ROOT_SEED``
    so repeated runs on the same inputs give the same refits.
    """
    if seed is not None:
        return seed
    seed_kwarg = wrapper.seed_kwarg
    if seed_kwarg is not None:
        for kwargs in ({} if sample_kwargs is None else sample_kwargs, wrapper.sample_kwargs):
            if kwargs.get(seed_kwarg) is not None:
                return kwargs[seed_kwarg]
    return DEFAULT_ROOT_SEED


def task_seeds(seed, positions):
    """Derive one integer seed per observation position.

    Seeds depend only on the root `seed` and on the position, never on the order in which
    refits are submitted or on the worker running them.

    Parameters
    ----------
    seed : int, SeedSequence or None
        Root seed. None draws fresh entropy.
    positions : array_like of int

    Returns
    -------
    list of int
    """
    root = seed if isinstance(seed, np.random.SeedSequence) else np.random.SeedSequence(seed)
    return [
        int(
            np.random.SeedSequence(
                root.entropy, spawn_key=(*root.spawn_key, int(position))
            ).generate_state(1)[0]
        )
        for position in positions
    ]


def build_tasks(pareto_k, positions, seed=None):
    """Build the refit tasks for the given flat positions."""
    selectors = obs_selectors(pareto_k, positions)
    seeds = task_seeds(seed, positions)
    return [
        RefitTask(position=int(position), idx=idx, seed=task_seed)
        for position, idx, task_seed in zip(positions, selectors, seeds)
    ]


def _run_refit(wrapper, task, data, sample_kwargs, save_fits, quiet=False):
    if quiet and _CONTEXT_AWARE_WARNINGS:
        # warning filters are local to this worker, the ones set in run do not reach it
        with warnings.catch_warnings(action="ignore"):
            return _refit(wrapper, task, data, sample_kwargs, save_fits)
    return _refit(wrapper, task, data, sample_kwargs, save_fits)


def _refit(wrapper, task, data, sample_kwargs, save_fits):
    if wrapper.seed_kwarg is not None:
        sample_kwargs = {**sample_kwargs, wrapper.seed_kwarg: task.seed}
    idata__i, excluded_obs = wrapper.refit(task.idx, data=data, **sample_kwargs)
    log_lik = wrapper.log_likelihood__i(excluded_obs, idata__i)
    return RefitResult(position=task.position, log_lik=log_lik, idata=idata__i if save_fits else None)


class RefitScheduler:
    """Dispatch leave-one-out refits to a pool of workers and join on their results.

    Refits share nothing but read access to the wrapper and the observations. Results are
    associated to the position of the observation they leave out, so the outcome does not
    depend on the order in which refits finish. A single failed refit fails the whole batch.

    Parameters
    ----------
    wrapper : SamplingWrapper
    data : Dataset, optional
        Observations to split instead of the ones stored in the wrapper.
    n_workers : int, default 1
        Size of the internal thread pool, ignored when `executor` is given.
    executor : concurrent.futures.Executor, optional
        Caller owned executor. It is not shut down by the scheduler.
    timeout : float, optional
        Deadline in seconds for the whole batch, counted from the call to :meth:`join`.
        It is not a per refit limit: once it expires every unfinished refit is a failure.
    quiet : bool, default True
        Merge ``wrapper.quiet_kwargs`` into the sampling kwargs and ignore warnings
        raised while refitting.
    save_fits : bool, default False
        Keep the refit inference data in the results.
    sample_kwargs : dict, optional
        Extra keyword arguments forwarded to ``wrapper.sample``.

    Examples
    --------
    .. code-block:: python

        with RefitScheduler(wrapper, n_workers=4) as scheduler:
            results = scheduler.run(build_tasks(loo_orig.pareto_k, [2, 6], seed=1))
    """

    def __init__(
        self,
        wrapper,
        data=None,
        n_workers=1,
        executor=None,
        timeout=None,
        quiet=True,
        save_fits=False,
        sample_kwargs=None,
    ):
        self.wrapper = wrapper
        self.data = data
        self.n_workers = validate_n_workers(n_workers)
        self.timeout = validate_timeout(timeout)
        self.quiet = quiet
        self.save_fits = save_fits
        sample_kwargs = {} if sample_kwargs is None else dict(sample_kwargs)
        if quiet:
            sample_kwargs = {**wrapper.quiet_kwargs, **sample_kwargs}
        self.sample_kwargs = sample_kwargs
        self._executor = executor
        self._owns_executor = executor is None
        self._futures = {}

    def __enter__(self):
        """Start the internal executor."""
        self._get_executor()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Shut down the internal executor, without waiting for running refits on errors."""
        self.shutdown(wait=exc_type is None)

    def _get_executor(self):
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.n_workers, thread_name_prefix="reloo"
            )
        return self._executor

    def shutdown(self, wait=True):  # pylint: disable=redefined-outer-name
        """Shut down the internal executor, pending refits are cancelled."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=True)
            self._executor = None

    @property
    def futures(self):
        """Mapping of observation position to the handle of its refit."""
        return dict(self._futures)

    def submit(self, task):
        """Submit one refit task and return its :class:`~concurrent.futures.Future` handle."""
        if task.position in self._futures:
            raise ValidationError(f"A refit for observation {task.position} was already submitted")
        future = self._get_executor().submit(
            _run_refit,
            self.wrapper,
            task,
            self.data,
            self.sample_kwargs,
            self.save_fits,
            self.quiet,
        )
        self._futures[task.position] = future
        return future

    def submit_all(self, tasks):
        """Submit all tasks, returning a mapping of position to handle."""
        tasks = list(tasks)
        n_tasks = len(tasks)
        for i, task in enumerate(tasks, start=1):
            _log.info(
                "Fitting model %d out of %d (leaving out observation %s)", i, n_tasks, task.idx
            )
            self.submit(task)
        return self.futures

    def cancel(self):
        """Cancel every refit that has not started yet.

        Returns
        -------
        int
            Number of refits cancelled.
        """
        return sum(future.cancel() for future in self._futures.values())

    def join(self):
        """Block until every submitted refit has finished.

        Returns
        -------
        dict of {int : RefitResult}
            Results keyed and sorted by observation position.

        Raises
        ------
        RefitError
            If any refit failed, was cancelled or did not finish within `timeout`.
            No partial results are returned.
        """
        if not self._futures:
            return {}
        done, not_done = wait(
            self._futures.values(), timeout=self.timeout, return_when=FIRST_EXCEPTION
        )
        for position, future in sorted(self._futures.items()):
            if future in done and not future.cancelled() and future.exception() is not None:
                self.cancel()
                exc = future.exception()
                raise RefitError(
                    f"Refit leaving out observation {position} failed: {exc}", position=position
                ) from exc
        if not_done:
            self.cancel()
            raise RefitError(
                f"{len(not_done)} refit(s) did not finish within {self.timeout} seconds"
            )
        cancelled = [position for position, future in self._futures.items() if future.cancelled()]
        if cancelled:
            raise RefitError(
                f"Refits leaving out observations {sorted(cancelled)} were cancelled",
                position=min(cancelled),
            )
        return {position: self._futures[position].result() for position in sorted(self._futures)}

    def run(self, tasks):
        """Submit all `tasks` and join on them.

        With `quiet`, warnings are ignored through :func:`warnings.catch_warnings` for the
        duration of the call. On builds with context aware warnings each worker installs
        its own filter instead, since filters set here do not reach worker threads.
        Otherwise the filters are process wide and are restored when this call returns,
        which after a timeout can happen while abandoned refits are still running.
        """
        with warnings.catch_warnings():
            if self.quiet:
                warnings.simplefilter("ignore")
            self.submit_all(tasks)
            return self.join()
