# Copyright (c) Syntropy Systems
"""Pydantic models for per-seed trial results."""

from __future__ import annotations

import traceback as tb
from typing import Annotated, Literal, Union

from pydantic import Field
from typing_extensions import TypeAlias

from .base import SweepBaseModel

MAX_TRACEBACK_CHARS = 4000


class TrialSuccess(SweepBaseModel):
    """Estimates produced by one configuration under one seed."""

    status: Literal["ok"] = "ok"
    seed: int
    estimate: float
    variance: float
    ci_lower: float
    ci_upper: float
    p_value: float
    elapsed_time: float
    q_weights: dict[str, float] = Field(default_factory=dict)
    g_weights: dict[str, float] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True


class TrialFailure(SweepBaseModel):
    """A seed whose estimator raised instead of returning estimates."""

    status: Literal["error"] = "error"
    seed: int
    configuration: str
    error_type: str
    error_message: str
    traceback: str | None = None
    elapsed_time: float = 0.0

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        seed: int,
        configuration: str,
        elapsed_time: float = 0.0,
    ) -> TrialFailure:
        """Build a failure record carrying the exception and its context."""
        formatted = "".join(tb.format_exception(type(exc), exc, exc.__traceback__))
        return cls(
            seed=seed,
            configuration=configuration,
            error_type=type(exc).__name__,
            error_message=str(exc),
            traceback=formatted[-MAX_TRACEBACK_CHARS:],
            elapsed_time=elapsed_time,
        )

    def describe(self) -> str:
        """Return ``ErrorType: message`` for logs and tables."""
        if self.error_message:
            return f"{self.error_type}: {self.error_message}"
        return self.error_type


TrialResult: TypeAlias = Annotated[
    Union[TrialSuccess, TrialFailure],
    Field(discriminator="status"),
]
