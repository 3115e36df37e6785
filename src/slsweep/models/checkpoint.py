# Copyright (c) Syntropy Systems
"""Pydantic models for persisted per-configuration checkpoints."""

from __future__ import annotations

from pydantic import Field

from .base import SweepBaseModel
from .trial import TrialFailure, TrialResult, TrialSuccess


class BaselineSummary(SweepBaseModel):
    """G-computation baseline computed once per run from the working sample."""

    ate_hat: float
    mor_hat: float


class Checkpoint(SweepBaseModel):
    """All trial results for one configuration, written as a single unit."""

    ordinal: int
    configuration: str
    components: list[str]
    results: list[TrialResult] = Field(default_factory=list)
    summary: BaselineSummary
    created_at: str

    @property
    def successes(self) -> list[TrialSuccess]:
        return [r for r in self.results if isinstance(r, TrialSuccess)]

    @property
    def failures(self) -> list[TrialFailure]:
        return [r for r in self.results if isinstance(r, TrialFailure)]
