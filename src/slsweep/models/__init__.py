# Copyright (c) Syntropy Systems
"""Data models for slsweep."""

from .base import SweepBaseModel
from .checkpoint import BaselineSummary, Checkpoint
from .run import GitInfo, RunManifest, SessionInfo, TruthSummary
from .trial import TrialFailure, TrialResult, TrialSuccess

__all__ = [
    "BaselineSummary",
    "Checkpoint",
    "GitInfo",
    "RunManifest",
    "SessionInfo",
    "SweepBaseModel",
    "TrialFailure",
    "TrialResult",
    "TrialSuccess",
    "TruthSummary",
]
