# Copyright (c) Syntropy Systems
"""Tests for the worker pool."""

from __future__ import annotations

import math

import numpy as np
import pytest

from slsweep.combinator import Configuration
from slsweep.estimators import tmle_estimate
from slsweep.models.trial import TrialFailure, TrialSuccess
from slsweep.pool import TrialContext, WorkerPool, evaluate_trial
from slsweep.seeds import generate_seed_plan


def _context(estimator, n: int = 20) -> TrialContext:
    rng = np.random.default_rng(1)
    return TrialContext(
        y=rng.binomial(1, 0.5, n).astype(float),
        a=rng.binomial(1, 0.3, n).astype(float),
        w=rng.normal(size=(n, 4)),
        estimator=estimator,
    )


CONFIG = Configuration(ordinal=4, components=("glm", "mean"))


class TestEvaluateTrial:
    """Tests for evaluate_trial."""

    def test_success(self, fake_estimator) -> None:
        """Test a returning estimator becomes a TrialSuccess."""
        result = evaluate_trial(_context(fake_estimator), CONFIG, 9)

        assert isinstance(result, TrialSuccess)
        assert result.seed == 9
        assert result.estimate == pytest.approx(0.2)
        assert result.elapsed_time >= 0

    def test_failure_is_captured(self, failing_estimator) -> None:
        """Test a raising estimator becomes a TrialFailure with context."""
        result = evaluate_trial(_context(failing_estimator), CONFIG, 8)

        assert isinstance(result, TrialFailure)
        assert result.seed == 8
        assert result.configuration == "glm_mean"
        assert result.error_type == "ValueError"
        assert "singular fit" in result.error_message
        assert result.traceback is not None
        assert "ValueError" in result.traceback


class TestWorkerPool:
    """Tests for WorkerPool.run."""

    def test_results_follow_plan_order(self, recorder) -> None:
        """Test results come back in seed-plan order."""
        recorder.delay = 0.005
        seeds = generate_seed_plan(1, 20)

        with WorkerPool(_context(recorder), workers=4, backend="thread") as pool:
            results = pool.run(CONFIG, seeds)

        assert [r.seed for r in results] == list(seeds)
        assert sorted(seed for _, seed in recorder.calls) == sorted(seeds)

    def test_failures_do_not_abort_the_sweep(self, failing_estimator) -> None:
        """Test a failing seed leaves the other seeds' results intact."""
        seeds = [1, 2, 3, 4, 5, 6]

        with WorkerPool(_context(failing_estimator), workers=2, backend="thread") as pool:
            results = pool.run(CONFIG, seeds)

        assert len(results) == 6
        statuses = {r.seed: r.status for r in results}
        assert statuses == {1: "ok", 2: "error", 3: "ok", 4: "error", 5: "ok", 6: "error"}

    def test_worker_bound_respected(self, recorder) -> None:
        """Test no more than `workers` trials run at once."""
        recorder.delay = 0.01

        with WorkerPool(_context(recorder), workers=3, backend="thread") as pool:
            _ = pool.run(CONFIG, list(range(1, 31)))

        assert 1 <= recorder.max_active <= 3

    def test_callback_sees_every_trial(self, fake_estimator) -> None:
        """Test on_trial is invoked once per seed with its plan index."""
        seen: list[tuple[int, int]] = []

        with WorkerPool(_context(fake_estimator), workers=2, backend="thread") as pool:
            _ = pool.run(CONFIG, [10, 20, 30], on_trial=lambda i, r: seen.append((i, r.seed)))

        assert sorted(seen) == [(0, 10), (1, 20), (2, 30)]

    def test_pool_reused_across_configurations(self, recorder) -> None:
        """Test one pool serves consecutive configurations."""
        other = Configuration(ordinal=1, components=("glm",))

        with WorkerPool(_context(recorder), workers=2, backend="thread") as pool:
            first = pool.run(CONFIG, [1, 2])
            second = pool.run(other, [1, 2])

        assert [r.estimate for r in first] == pytest.approx([0.2, 0.2])
        assert [r.estimate for r in second] == pytest.approx([0.1, 0.1])

    def test_invalid_arguments(self, fake_estimator) -> None:
        """Test impossible pool settings are refused."""
        with pytest.raises(ValueError, match="workers"):
            _ = WorkerPool(_context(fake_estimator), workers=0)

        with pytest.raises(ValueError, match="backend"):
            _ = WorkerPool(_context(fake_estimator), workers=1, backend="mpi")

    def test_process_backend(self, working_sample) -> None:
        """Test the process backend runs the real estimator."""
        context = TrialContext(
            y=working_sample.y,
            a=working_sample.a,
            w=working_sample.w,
            estimator=tmle_estimate,
        )

        with WorkerPool(context, workers=2, backend="process") as pool:
            results = pool.run(CONFIG, [101, 202])

        assert [r.seed for r in results] == [101, 202]
        assert all(isinstance(r, TrialSuccess) for r in results)
        assert all(math.isfinite(r.estimate) for r in results)

    def test_crashed_worker_fails_only_its_seed(self, crashing) -> None:
        """Test a worker that dies fails its own seed and nothing else."""
        seeds = [1, 2, 3, 4, 5, 6, 7, 8]
        seen: list[int] = []

        with WorkerPool(_context(crashing), workers=2, backend="process") as pool:
            results = pool.run(CONFIG, seeds, on_trial=lambda i, r: seen.append(i))

            assert [r.seed for r in results] == seeds
            errors = [r.seed for r in results if r.status == "error"]
            assert errors == [3]
            failure = results[2]
            assert isinstance(failure, TrialFailure)
            assert failure.error_type == "BrokenProcessPool"
            assert sorted(seen) == list(range(8))

            again = pool.run(CONFIG, [1, 2, 4, 5])

        assert all(isinstance(r, TrialSuccess) for r in again)
        assert [r.seed for r in again] == [1, 2, 4, 5]
