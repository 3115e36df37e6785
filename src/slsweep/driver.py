# Copyright (c) Syntropy Systems
"""Run driver: one sample size, every component combination, every seed."""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from slsweep.checkpoint import CheckpointStore, utcnow
from slsweep.combinator import combination_count, enumerate_configurations, validate_components
from slsweep.config import SweepSettings
from slsweep.estimators import estimator_name, tmle_estimate
from slsweep.learners import get_learner
from slsweep.models.run import RunManifest
from slsweep.pool import TrialContext, WorkerPool
from slsweep.population import (
    baseline_summary,
    compute_truth,
    draw_sample,
    generate_population,
)
from slsweep.runlog import RunLog, describe_memory_usage
from slsweep.seeds import generate_seed_plan
from slsweep.session import capture_session_info, format_session_info
from slsweep.stitch import (
    CONSOLIDATED_FILENAME,
    MANIFEST_FILENAME,
    read_manifest,
    stitch,
    write_consolidated,
)

if TYPE_CHECKING:
    import pandas as pd

    from slsweep.combinator import Configuration
    from slsweep.estimators import Estimator
    from slsweep.models.trial import TrialResult

logger = logging.getLogger(__name__)

SAMPLE_FILENAME = "working_sample.csv"


class RunMismatchError(ValueError):
    """The output directory holds a run with different parameters."""


@dataclass
class SweepOutcome:
    """What a call to run_compute did."""

    run_dir: Path
    evaluated: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    table: pd.DataFrame | None = None


def validate_parameters(n: int, total_seeds: int, settings: SweepSettings) -> None:
    """Fail fast on unusable run parameters, before any work starts."""
    settings.validate()
    validate_components(settings.components)
    if not 1 <= n <= settings.population_size:
        msg = f"Sample size N must be in [1, {settings.population_size}], got {n}"
        raise ValueError(msg)
    if total_seeds < 1:
        msg = f"Total seed count K must be at least 1, got {total_seeds}"
        raise ValueError(msg)
    if total_seeds > settings.seed_upper_bound:
        msg = (
            f"Total seed count K={total_seeds} exceeds the seed range "
            f"[1, {settings.seed_upper_bound}]"
        )
        raise ValueError(msg)


def _check_learners(components: list[str], estimator: Estimator) -> None:
    # Only the built-in estimator resolves component names to learners
    if estimator is tmle_estimate:
        for name in components:
            _ = get_learner(name)


class Sweep:
    """Drives one run: population, sample, combinations, pool, checkpoints.

    Configurations are processed strictly one at a time; only the seed
    sweep within a configuration runs in parallel.
    """

    def __init__(
        self,
        n: int,
        output_dir: Path,
        total_seeds: int,
        settings: SweepSettings | None = None,
        estimator: Estimator = tmle_estimate,
    ) -> None:
        self.settings = settings or SweepSettings()
        validate_parameters(n, total_seeds, self.settings)
        _check_learners(self.settings.components, estimator)

        self.n = n
        self.run_dir = Path(output_dir)
        self.total_seeds = total_seeds
        self.estimator = estimator
        self.workers = self.settings.resolved_workers()
        self.store = CheckpointStore.for_run(self.run_dir)
        self.log = RunLog(self.run_dir / self.settings.log_name)
        self._manifest_path = self.run_dir / MANIFEST_FILENAME
        self._start = 0.0

    def elapsed(self) -> float:
        """Seconds since the run started."""
        return time.perf_counter() - self._start

    def run(self) -> SweepOutcome:
        """Execute the run and return what was evaluated and skipped."""
        self._start = time.perf_counter()
        self.run_dir.mkdir(parents=True, exist_ok=True)
        settings = self.settings

        self.log.lines([
            f"Start time: {utcnow()}",
            (
                f"Parameters: N={self.n} K={self.total_seeds} "
                f"master_seed={settings.master_seed} workers={self.workers} "
                f"backend={settings.backend}"
            ),
            "",
        ])
        logger.info("Starting run N=%d K=%d in %s", self.n, self.total_seeds, self.run_dir)

        population = generate_population(settings.population_size, settings.master_seed)
        truth = compute_truth(population)
        self.log.lines([
            f"Population size: {settings.population_size}",
            f"TRUE ATE: {truth.true_ate}",
            f"TRUE MOR: {truth.true_mor}",
        ])

        sample = draw_sample(population, self.n, settings.master_seed)
        del population
        baseline = baseline_summary(sample)
        self.log.lines([
            f"ATE_hat: {baseline.ate_hat}",
            f"MOR_hat: {baseline.mor_hat}",
        ])

        sample_path = self.run_dir / SAMPLE_FILENAME
        if not sample_path.exists():
            sample.frame.to_csv(sample_path, index=False)

        configurations = list(enumerate_configurations(settings.components))
        self.log.lines([
            f"Number of unique SuperLearners: {len(settings.components)}",
            ", ".join(settings.components),
            f"Number of SL combinations overall: {len(configurations)}",
        ])

        seeds = generate_seed_plan(
            settings.master_seed, self.total_seeds, settings.seed_upper_bound,
        )

        manifest = RunManifest(
            sample_size=self.n,
            total_seeds=self.total_seeds,
            master_seed=settings.master_seed,
            population_size=settings.population_size,
            seed_upper_bound=settings.seed_upper_bound,
            estimator=estimator_name(self.estimator),
            components=list(settings.components),
            combination_count=combination_count(len(settings.components)),
            workers=self.workers,
            backend=settings.backend,
            truth=truth,
            baseline=baseline,
            seed_plan=list(seeds),
            started_at=utcnow(),
        )
        self._check_resumable(manifest)
        self._write_manifest(manifest)

        _ = self.store.remove_stale_temp_files()
        pending = [c for c in configurations if not self.store.exists(c)]
        skipped = [c.ordinal for c in configurations if c not in pending]

        self.log.lines([
            f"Parallel cores available: {os.cpu_count()}",
            f"Parallel cores specified to be used: {self.workers}",
        ])
        if skipped:
            self.log.line(
                f"Resuming: {len(skipped)} of {len(configurations)} combinations "
                "already checkpointed",
            )
            logger.info("Skipping %d checkpointed combination(s)", len(skipped))

        outcome = SweepOutcome(run_dir=self.run_dir, skipped=skipped)
        context = TrialContext(y=sample.y, a=sample.a, w=sample.w, estimator=self.estimator)

        try:
            with WorkerPool(context, self.workers, settings.backend) as pool:
                for configuration in pending:
                    results = pool.run(
                        configuration,
                        seeds,
                        on_trial=self._trial_logger(configuration, len(seeds)),
                    )
                    _ = self.store.write(
                        configuration, results, baseline, expected_trials=len(seeds),
                    )
                    self.log.configuration_finished(
                        configuration,
                        results,
                        elapsed=self.elapsed(),
                        memory=describe_memory_usage(),
                    )
                    outcome.evaluated.append(configuration.ordinal)
            outcome.table = stitch(self.run_dir, settings.components)
            _ = write_consolidated(outcome.table, self.run_dir / CONSOLIDATED_FILENAME)
        except BaseException:
            manifest.status = "failed"
            manifest.finished_at = utcnow()
            self._write_manifest(manifest)
            raise

        session = capture_session_info()
        self.log.blank()
        self.log.lines(format_session_info(session))
        self.log.lines([
            "",
            f"Execution time:{self.elapsed():.3f}",
            f"Total memory usage: {describe_memory_usage()}",
        ])

        manifest.status = "completed"
        manifest.finished_at = utcnow()
        manifest.session = session
        self._write_manifest(manifest)
        logger.info(
            "Run complete: %d evaluated, %d skipped, %d rows",
            len(outcome.evaluated), len(outcome.skipped), len(outcome.table),
        )
        return outcome

    def _trial_logger(self, configuration: Configuration, total: int):
        done = {"count": 0}

        def on_trial(index: int, result: TrialResult) -> None:
            done["count"] += 1
            logger.debug(
                "%s seed #%d (%s) %s [%d/%d]",
                configuration.label, index + 1, result.seed, result.status,
                done["count"], total,
            )

        return on_trial

    def _check_resumable(self, manifest: RunManifest) -> None:
        existing = read_manifest(self.run_dir)
        if existing is None:
            return
        previous = existing.identity()
        current = manifest.identity()
        diffs = [
            f"{name}: {previous[name]!r} != {current[name]!r}"
            for name in current
            if previous[name] != current[name]
        ]
        if diffs:
            msg = f"{self.run_dir} holds a run with different parameters ({'; '.join(diffs)})"
            raise RunMismatchError(msg)
        manifest.started_at = existing.started_at

    def _write_manifest(self, manifest: RunManifest) -> None:
        _ = self._manifest_path.write_text(manifest.model_dump_json(indent=2), encoding="utf-8")


def run_compute(
    n: int,
    output_dir: str | Path = ".",
    total_seeds: int = 10000,
    *,
    settings: SweepSettings | None = None,
    estimator: Estimator = tmle_estimate,
) -> SweepOutcome:
    """Run the full combination sweep for sample size n into output_dir.

    Args:
        n: Working sample size N
        output_dir: Directory for checkpoints, log, manifest and table
        total_seeds: Seed plan length K
        settings: Run settings (defaults when omitted)
        estimator: Callable evaluated once per (configuration, seed)

    Returns:
        The SweepOutcome, including the consolidated table

    Example:
        >>> outcome = run_compute(50, "output_50", total_seeds=1000)
        >>> outcome.table.groupby("configuration")["ate_tmle"].mean()

    """
    sweep = Sweep(n, Path(output_dir), total_seeds, settings=settings, estimator=estimator)
    return sweep.run()
