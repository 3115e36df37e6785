# Copyright (c) Syntropy Systems
"""Bounded worker pool that evaluates one configuration across a seed plan."""
from __future__ import annotations

import logging
import time
from concurrent.futures import (
    Executor,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    as_completed,
)
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from typing_extensions import Self

from slsweep.config import BACKENDS
from slsweep.models.trial import TrialFailure, TrialResult, TrialSuccess

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    import numpy as np

    from slsweep.combinator import Configuration
    from slsweep.estimators import Estimator

logger = logging.getLogger(__name__)

TrialCallback = Callable[[int, TrialResult], None]


@dataclass(frozen=True)
class TrialContext:
    """Read-only inputs every trial of a run shares."""

    y: np.ndarray
    a: np.ndarray
    w: np.ndarray
    estimator: Estimator


def evaluate_trial(
    context: TrialContext,
    configuration: Configuration,
    seed: int,
) -> TrialResult:
    """Run the estimator once, converting any failure into a TrialFailure."""
    started = time.perf_counter()
    try:
        estimate = context.estimator(
            context.y, context.a, context.w, configuration.components, seed,
        )
    except Exception as exc:  # noqa: BLE001
        return TrialFailure.from_exception(
            exc,
            seed=seed,
            configuration=configuration.identity,
            elapsed_time=time.perf_counter() - started,
        )

    return TrialSuccess(
        seed=seed,
        estimate=estimate.psi,
        variance=estimate.variance,
        ci_lower=estimate.ci_lower,
        ci_upper=estimate.ci_upper,
        p_value=estimate.p_value,
        elapsed_time=time.perf_counter() - started,
        q_weights=dict(estimate.q_weights),
        g_weights=dict(estimate.g_weights),
    )


# Per-process context, set once by the executor initializer
_worker_state: dict[str, Optional[TrialContext]] = {"context": None}


def _init_worker(context: TrialContext) -> None:
    _worker_state["context"] = context


def _evaluate_in_worker(configuration: Configuration, seed: int) -> TrialResult:
    context = _worker_state["context"]
    if context is None:
        msg = "Worker process was not initialized with a trial context"
        raise RuntimeError(msg)
    return evaluate_trial(context, configuration, seed)


class WorkerPool:
    """Fans one configuration's seed sweep out over a fixed number of workers.

    Features:
    - Process or thread backend behind the same interface
    - Per-seed failure isolation (failures become TrialFailure records)
    - Results returned in seed-plan order regardless of completion order
    - A crashed worker process fails only its own seed; the executor is
      rebuilt and the remaining seeds resubmitted
    """

    context: TrialContext
    workers: int
    backend: str
    _executor: Executor | None

    def __init__(self, context: TrialContext, workers: int, backend: str = "process") -> None:
        """Initialize a worker pool.

        Args:
            context: Working sample and estimator shared by all trials
            workers: Number of parallel workers (at least 1)
            backend: "process" or "thread"

        """
        if workers < 1:
            msg = f"workers must be at least 1, got {workers}"
            raise ValueError(msg)
        if backend not in BACKENDS:
            msg = f"Unknown backend: {backend}"
            raise ValueError(msg)

        self.context = context
        self.workers = workers
        self.backend = backend
        self._executor = None

    def _ensure_executor(self) -> Executor:
        if self._executor is None:
            if self.backend == "process":
                self._executor = ProcessPoolExecutor(
                    max_workers=self.workers,
                    initializer=_init_worker,
                    initargs=(self.context,),
                )
            else:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.workers,
                    thread_name_prefix="slsweep-worker",
                )
        return self._executor

    def _submit(self, configuration: Configuration, seed: int) -> Future[TrialResult]:
        executor = self._ensure_executor()
        if self.backend == "process":
            return executor.submit(_evaluate_in_worker, configuration, seed)
        return executor.submit(evaluate_trial, self.context, configuration, seed)

    def run(
        self,
        configuration: Configuration,
        seeds: Sequence[int],
        on_trial: TrialCallback | None = None,
    ) -> list[TrialResult]:
        """Evaluate configuration under every seed and wait for all of them.

        A worker process that dies takes every unfinished future of the
        executor with it. When that happens the executor is replaced, the
        earliest unfinished seeds are re-run one at a time so the seed that
        crashed is the only one recorded as a failure, and the rest are
        resubmitted.

        Args:
            configuration: The configuration to evaluate
            seeds: The run's seed plan
            on_trial: Optional callback invoked as (plan index, result) in
                completion order

        Returns:
            One result per seed, in seed-plan order

        """
        results: list[TrialResult | None] = [None] * len(seeds)
        pending = list(range(len(seeds)))

        while pending:
            broken = self._run_batch(configuration, seeds, pending, results, on_trial)
            if not broken:
                break

            logger.warning(
                "Worker pool broke during %s with %d trials unfinished; restarting it",
                configuration.label, len(broken),
            )
            self._discard_executor()

            # Work items are dispatched in submission order, so the crash
            # happened in one of the earliest unfinished trials
            suspects = broken[: self.workers + 1]
            for index in suspects:
                self._run_alone(configuration, seeds, index, results, on_trial)
            pending = broken[len(suspects):]

        return [r for r in results if r is not None]

    def _run_batch(
        self,
        configuration: Configuration,
        seeds: Sequence[int],
        indices: list[int],
        results: list[TrialResult | None],
        on_trial: TrialCallback | None,
    ) -> list[int]:
        """Run the given plan indices concurrently.

        Returns:
            Sorted plan indices left unfinished because the executor broke

        """
        futures: dict[Future[TrialResult], int] = {}
        broken: list[int] = []
        for index in indices:
            try:
                futures[self._submit(configuration, seeds[index])] = index
            except (BrokenProcessPool, RuntimeError):
                # Executor died while submitting
                broken.append(index)

        for future in as_completed(futures):
            index = futures[future]
            seed = seeds[index]
            try:
                result = future.result()
            except BrokenProcessPool:
                broken.append(index)
                continue
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Trial for %s seed=%s did not complete: %s",
                    configuration.label, seed, exc,
                )
                result = TrialFailure.from_exception(
                    exc, seed=seed, configuration=configuration.identity,
                )
            self._record(index, result, results, on_trial)

        return sorted(broken)

    def _run_alone(
        self,
        configuration: Configuration,
        seeds: Sequence[int],
        index: int,
        results: list[TrialResult | None],
        on_trial: TrialCallback | None,
    ) -> None:
        """Run one plan index with nothing else in flight."""
        seed = seeds[index]
        try:
            result = self._submit(configuration, seed).result()
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, BrokenProcessPool):
                logger.warning(
                    "Trial for %s seed=%s crashed its worker", configuration.label, seed,
                )
                self._discard_executor()
            else:
                logger.warning(
                    "Trial for %s seed=%s did not complete: %s",
                    configuration.label, seed, exc,
                )
            result = TrialFailure.from_exception(
                exc, seed=seed, configuration=configuration.identity,
            )
        self._record(index, result, results, on_trial)

    @staticmethod
    def _record(
        index: int,
        result: TrialResult,
        results: list[TrialResult | None],
        on_trial: TrialCallback | None,
    ) -> None:
        results[index] = result
        if on_trial is not None:
            on_trial(index, result)

    def _discard_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def close(self) -> None:
        """Shut down the underlying executor and wait for workers to exit."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> Self:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - shut down the executor."""
        self.close()
