# Copyright (c) Syntropy Systems
"""Durable, atomic per-configuration checkpoints."""
from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from slsweep.combinator import CHECKPOINT_SUFFIX, parse_checkpoint_name
from slsweep.models.checkpoint import BaselineSummary, Checkpoint

if TYPE_CHECKING:
    from collections.abc import Sequence

    from slsweep.combinator import Configuration
    from slsweep.models.trial import TrialResult

logger = logging.getLogger(__name__)

CHECKPOINT_DIRNAME = "checkpoints"
TEMP_SUFFIX = ".tmp"


class CheckpointWriteError(RuntimeError):
    """A checkpoint could not be persisted; the run must stop."""


def _fsync_directory(path: Path) -> None:
    """Flush a directory entry so a rename inside it survives a crash."""
    if os.name == "nt":
        # Directories cannot be opened for fsync on Windows
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


@dataclass(frozen=True)
class CheckpointRef:
    """A checkpoint file found on disk, identified by its name."""

    ordinal: int
    identity: str
    path: Path


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_checkpoint_dir(run_dir: Path) -> Path:
    """Get the checkpoint directory of a run."""
    return run_dir / CHECKPOINT_DIRNAME


class CheckpointStore:
    """Reads and writes one JSON checkpoint per configuration.

    Writes go to a temporary file in the same directory, are fsynced and
    then renamed over the final name, so a checkpoint either exists
    completely or not at all.
    """

    root: Path

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def for_run(cls, run_dir: Path) -> CheckpointStore:
        """Return the store that lives inside a run directory."""
        return cls(get_checkpoint_dir(run_dir))

    def path_for(self, configuration: Configuration) -> Path:
        """Return the checkpoint path for a configuration."""
        return self.root / configuration.filename

    def exists(self, configuration: Configuration) -> bool:
        """Return whether the configuration has already been checkpointed."""
        return self.path_for(configuration).is_file()

    def write(
        self,
        configuration: Configuration,
        results: Sequence[TrialResult],
        summary: BaselineSummary,
        expected_trials: int | None = None,
    ) -> Path:
        """Persist all results for a configuration as one checkpoint.

        Raises:
            CheckpointWriteError: If the checkpoint is incomplete or the
                filesystem rejects the write

        """
        if expected_trials is not None and len(results) != expected_trials:
            msg = (
                f"Checkpoint {configuration.label} has {len(results)} results, "
                f"expected {expected_trials}"
            )
            raise CheckpointWriteError(msg)

        checkpoint = Checkpoint(
            ordinal=configuration.ordinal,
            configuration=configuration.identity,
            components=list(configuration.components),
            results=list(results),
            summary=summary,
            created_at=utcnow(),
        )
        payload = checkpoint.model_dump_json(indent=2)
        path = self.path_for(configuration)

        tmp_name: str | None = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.root,
                prefix=f".{configuration.ordinal}-",
                suffix=TEMP_SUFFIX,
                delete=False,
            ) as f:
                tmp_name = f.name
                _ = f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            _fsync_directory(self.root)
        except OSError as e:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            msg = f"Failed to write checkpoint {path}: {e}"
            raise CheckpointWriteError(msg) from e

        logger.debug("Wrote checkpoint %s", path)
        return path

    def read(self, path: Path) -> Checkpoint:
        """Load one checkpoint file."""
        return Checkpoint.model_validate_json(path.read_text(encoding="utf-8"))

    def discover(self) -> list[CheckpointRef]:
        """Find checkpoint files by name, ignoring anything else."""
        if not self.root.is_dir():
            return []

        refs: list[CheckpointRef] = []
        for path in self.root.iterdir():
            if not path.is_file() or path.suffix != CHECKPOINT_SUFFIX:
                continue
            parsed = parse_checkpoint_name(path.name)
            if parsed is None:
                continue
            ordinal, identity = parsed
            refs.append(CheckpointRef(ordinal=ordinal, identity=identity, path=path))
        return refs

    def read_all(self) -> list[Checkpoint]:
        """Load every checkpoint found. No ordering is guaranteed."""
        return [self.read(ref.path) for ref in self.discover()]

    def remove_stale_temp_files(self) -> int:
        """Delete temp files left behind by an interrupted write."""
        if not self.root.is_dir():
            return 0

        removed = 0
        for path in self.root.glob(f".*{TEMP_SUFFIX}"):
            with contextlib.suppress(OSError):
                path.unlink()
                removed += 1
        if removed:
            logger.info("Removed %d stale checkpoint temp file(s)", removed)
        return removed
