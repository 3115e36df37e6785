# Copyright (c) Syntropy Systems
"""Pydantic models for run metadata stored in run.json."""

from __future__ import annotations

from pydantic import Field

from .base import SweepBaseModel
from .checkpoint import BaselineSummary

# Parameters that must agree before a run directory may be resumed.
IDENTITY_FIELDS = (
    "sample_size",
    "total_seeds",
    "master_seed",
    "population_size",
    "seed_upper_bound",
    "estimator",
    "components",
)


class GitInfo(SweepBaseModel):
    """Captured git repository information."""

    commit: str
    short_hash: str
    dirty: bool


class SessionInfo(SweepBaseModel):
    """Interpreter, platform and library versions of the running process."""

    python: str
    implementation: str
    platform: str
    hostname: str
    cpu_count: int | None = None
    memory_total_gb: float | None = None
    packages: dict[str, str | None] = Field(default_factory=dict)
    git: GitInfo | None = None


class TruthSummary(SweepBaseModel):
    """Ground-truth effects computed from the full synthetic population."""

    true_ey1: float
    true_ey0: float
    true_ate: float
    true_mor: float


class RunManifest(SweepBaseModel):
    """Run parameters and status stored in run.json."""

    sample_size: int
    total_seeds: int
    master_seed: int
    population_size: int
    seed_upper_bound: int
    estimator: str
    components: list[str]
    combination_count: int
    workers: int
    backend: str
    truth: TruthSummary
    baseline: BaselineSummary
    seed_plan: list[int] = Field(default_factory=list)
    status: str = "running"
    started_at: str
    finished_at: str | None = None
    session: SessionInfo | None = None

    def identity(self) -> dict[str, object]:
        """Return the parameters that pin down a run's results."""
        return {name: getattr(self, name) for name in IDENTITY_FIELDS}
