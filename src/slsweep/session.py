# Copyright (c) Syntropy Systems
"""Environment/session capture for reproducibility records."""
from __future__ import annotations

import os
import platform
import shutil
import socket
import subprocess
import sys
from importlib import metadata
from typing import TYPE_CHECKING, cast

try:
    import psutil
except ImportError:
    psutil = None

from slsweep.models.run import GitInfo, SessionInfo

if TYPE_CHECKING:
    from pathlib import Path

TRACKED_PACKAGES = (
    "slsweep",
    "numpy",
    "pandas",
    "scipy",
    "statsmodels",
    "scikit-learn",
    "pydantic",
    "psutil",
)


def _run_command(
    argv: list[str],
    *,
    timeout: float,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str] | None:
    cmd_path = shutil.which(argv[0])
    if cmd_path is None:
        return None
    try:
        return subprocess.run(  # noqa: S603
            [cmd_path, *argv[1:]],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
            cwd=cwd,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None


def capture_git_info(cwd: Path | None = None) -> GitInfo | None:
    """Capture the commit and dirty state of the enclosing git repository."""
    result = _run_command(["git", "rev-parse", "HEAD"], timeout=5, cwd=cwd)
    if result is None or result.returncode != 0:
        return None
    commit = result.stdout.strip()

    dirty_result = _run_command(["git", "status", "--porcelain"], timeout=5, cwd=cwd)
    if dirty_result is None or dirty_result.returncode != 0:
        return None

    return GitInfo(
        commit=commit,
        short_hash=commit[:7],
        dirty=bool(dirty_result.stdout.strip()),
    )


def package_versions(names: tuple[str, ...] = TRACKED_PACKAGES) -> dict[str, str | None]:
    """Return installed versions of the tracked distributions."""
    versions: dict[str, str | None] = {}
    for name in names:
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            versions[name] = None
    return versions


def capture_session_info(capture_git: bool = True) -> SessionInfo:  # noqa: FBT001, FBT002
    """Capture interpreter, platform, hardware and library versions."""
    memory_total_gb = None
    if psutil is not None:
        try:
            memory_total_gb = round(cast("int", psutil.virtual_memory().total) / (1024**3), 2)
        except (AttributeError, OSError):
            memory_total_gb = None

    return SessionInfo(
        python=sys.version.split()[0],
        implementation=platform.python_implementation(),
        platform=platform.platform(),
        hostname=socket.gethostname(),
        cpu_count=os.cpu_count(),
        memory_total_gb=memory_total_gb,
        packages=package_versions(),
        git=capture_git_info() if capture_git else None,
    )


def format_session_info(info: SessionInfo) -> list[str]:
    """Render session info as run-log lines."""
    lines = [
        "Session info:",
        f"Python {info.python} ({info.implementation})",
        f"Platform: {info.platform}",
        f"Host: {info.hostname}",
        f"CPU count: {info.cpu_count if info.cpu_count is not None else 'unknown'}",
    ]
    if info.memory_total_gb is not None:
        lines.append(f"Memory total: {info.memory_total_gb} GB")
    lines.append("Packages:")
    for name, version in info.packages.items():
        lines.append(f"  {name} {version or 'not installed'}")
    if info.git is not None:
        dirty = " (dirty)" if info.git.dirty else ""
        lines.append(f"Git: {info.git.short_hash}{dirty}")
    return lines
