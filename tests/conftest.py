# Copyright (c) Syntropy Systems
"""Pytest fixtures for slsweep tests."""

from __future__ import annotations

import os
import tempfile
import threading
import time
from collections.abc import Generator
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pytest

from slsweep.config import SweepSettings
from slsweep.estimators import Estimate
from slsweep.population import WorkingSample, draw_sample, generate_population

if TYPE_CHECKING:
    from collections.abc import Sequence

# Store original cwd at module load time
_original_cwd = Path.cwd()


def constant_estimator(
    y: np.ndarray,
    a: np.ndarray,
    w: np.ndarray,
    components: Sequence[str],
    seed: int,
) -> Estimate:
    """Cheap stand-in for TMLE: the estimate encodes the configuration size."""
    _ = (y, a, w, seed)
    psi = 0.1 * len(components)
    return Estimate(
        psi=psi,
        variance=0.0001,
        ci_lower=psi - 0.0196,
        ci_upper=psi + 0.0196,
        p_value=0.01,
        q_weights={name: 1.0 / len(components) for name in components},
        g_weights={name: 1.0 / len(components) for name in components},
    )


def flaky_estimator(
    y: np.ndarray,
    a: np.ndarray,
    w: np.ndarray,
    components: Sequence[str],
    seed: int,
) -> Estimate:
    """Fails for even seeds whenever the configuration includes "mean"."""
    if "mean" in components and seed % 2 == 0:
        msg = f"singular fit for seed {seed}"
        raise ValueError(msg)
    return constant_estimator(y, a, w, components, seed)


def crashing_estimator(
    y: np.ndarray,
    a: np.ndarray,
    w: np.ndarray,
    components: Sequence[str],
    seed: int,
) -> Estimate:
    """Kills the worker process outright for seed 3."""
    if seed == 3:
        os._exit(1)
    return constant_estimator(y, a, w, components, seed)


class CallRecorder:
    """Thread-safe record of (components, seed) estimator calls."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls: list[tuple[tuple[str, ...], int]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(
        self,
        y: np.ndarray,
        a: np.ndarray,
        w: np.ndarray,
        components: Sequence[str],
        seed: int,
    ) -> Estimate:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append((tuple(components), seed))
        try:
            if self.delay:
                time.sleep(self.delay)
            return constant_estimator(y, a, w, components, seed)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def in_temp_dir(temp_dir: Path) -> Generator[Path, None, None]:
    """Change into a temporary directory for the duration of a test."""
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def small_settings() -> SweepSettings:
    """Settings small enough for a full run to finish in well under a second."""
    return SweepSettings(
        master_seed=612022,
        population_size=5000,
        components=["glm", "mean", "bayesglm"],
        workers=2,
        backend="thread",
    )


@pytest.fixture
def recorder() -> CallRecorder:
    """Get a fresh estimator call recorder."""
    return CallRecorder()


@pytest.fixture
def fake_estimator():
    """The constant stand-in estimator."""
    return constant_estimator


@pytest.fixture
def failing_estimator():
    """An estimator that fails for some seeds."""
    return flaky_estimator


@pytest.fixture
def crashing():
    """An estimator that kills its worker process for one seed."""
    return crashing_estimator


@pytest.fixture(scope="session")
def population():
    """A small synthetic population shared across tests."""
    return generate_population(20_000, 612022)


@pytest.fixture(scope="session")
def working_sample(population) -> WorkingSample:
    """A working sample of 400 rows from the shared population."""
    return draw_sample(population, 400, 612022)
