# Copyright (c) Syntropy Systems
"""Append-only run log read by external telemetry tools while a run is live.

Each finished configuration is written as a blank-line separated block::

    Finished SLcomb=<ordinal>_<identity>
    Trials: <ok> succeeded, <failed> failed
    Execution time:<seconds since run start>
    Memory usage: <text>

The extractor splits records on blank lines and reads fields 1, 3 and 4, so
the line order inside a block must not change.
"""
from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, cast

try:
    import psutil
except ImportError:
    psutil = None

from slsweep.models.trial import TrialFailure

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from slsweep.combinator import Configuration
    from slsweep.models.trial import TrialResult

logger = logging.getLogger(__name__)

_UNITS = ("B", "kB", "MB", "GB", "TB")


def format_bytes(size: float) -> str:
    """Format a byte count as a short human-readable string."""
    value = float(size)
    for unit in _UNITS:
        if abs(value) < 1024 or unit == _UNITS[-1]:
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} {_UNITS[-1]}"


def get_memory_usage() -> tuple[int | None, int | None]:
    """Return (driver RSS, summed RSS of child workers) in bytes."""
    if psutil is None:
        return None, None
    try:
        process = psutil.Process(os.getpid())
        main_rss = cast("int", process.memory_info().rss)
        children_rss = 0
        for child in process.children(recursive=True):
            try:
                children_rss += cast("int", child.memory_info().rss)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
    except (AttributeError, OSError, psutil.Error):
        return None, None
    else:
        return main_rss, children_rss


def describe_memory_usage() -> str:
    """Describe current memory use for the run log."""
    main_rss, children_rss = get_memory_usage()
    if main_rss is None:
        return "unavailable"
    if children_rss:
        return f"{format_bytes(main_rss)} (workers: {format_bytes(children_rss)})"
    return format_bytes(main_rss)


class RunLog:
    """Line-oriented, append-only log flushed after every line.

    A failing write is reported through ``logging`` and never interrupts
    the computation.
    """

    path: Path

    def __init__(self, path: Path) -> None:
        self.path = path

    def lines(self, lines: Iterable[str]) -> None:
        """Append lines to the log."""
        for line in lines:
            self.line(line)

    def line(self, text: str = "") -> None:
        """Append one line to the log and flush it."""
        try:
            with self.path.open("a", encoding="utf-8") as f:
                _ = f.write(text + "\n")
                _ = f.flush()
        except OSError as exc:
            logger.warning("Could not write to run log %s: %s", self.path, exc)

    def blank(self) -> None:
        """Append an empty line (block separator)."""
        self.line("")

    def configuration_finished(
        self,
        configuration: Configuration,
        results: Sequence[TrialResult],
        elapsed: float,
        memory: str | None = None,
    ) -> None:
        """Write the telemetry block for a finished configuration."""
        failures = [r for r in results if isinstance(r, TrialFailure)]
        self.blank()
        self.line(f"Finished SLcomb={configuration.label}")
        self.line(f"Trials: {len(results) - len(failures)} succeeded, {len(failures)} failed")
        self.line(f"Execution time:{elapsed:.3f}")
        self.line(f"Memory usage: {memory if memory is not None else describe_memory_usage()}")
        for failure in failures:
            self.line(f"Failed seed={failure.seed}: {failure.describe()}")
