# Copyright (c) Syntropy Systems
"""Configuration management for slsweep."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import cast

import yaml

CONFIG_FILENAME = "slsweep.yaml"
BACKENDS = ("process", "thread")

DEFAULT_COMPONENTS = (
    "glm",
    "glm.interaction",
    "bayesglm",
    "rpart",
    "rpart.prune",
    "ranger",
    "glmnet",
    "gam",
)


def default_workers() -> int:
    """Return the number of available cores minus one (at least one)."""
    return max(1, (os.cpu_count() or 1) - 1)


@dataclass
class SweepSettings:
    """Settings shared by every run of the sweep."""

    # Seeds the population, the working-sample draw and the seed plan
    master_seed: int = 612022

    # Size of the synthetic reference population
    population_size: int = 5_000_000

    # Seeds are drawn from [1, seed_upper_bound]
    seed_upper_bound: int = 10_000_000

    # Base set of super-learner components, in combinator order
    components: list[str] = field(default_factory=lambda: list(DEFAULT_COMPONENTS))

    # Worker pool size; None means available cores minus one
    workers: int | None = None

    # "process" or "thread"
    backend: str = "process"

    # Run log file name inside the output directory
    log_name: str = "run_log.txt"

    def resolved_workers(self) -> int:
        """Return the configured pool size, falling back to the default."""
        return self.workers if self.workers is not None else default_workers()

    def validate(self) -> None:
        """Raise ValueError if any setting is unusable."""
        if not self.components:
            msg = "At least one estimator component is required"
            raise ValueError(msg)
        if self.population_size < 1:
            msg = f"population_size must be positive, got {self.population_size}"
            raise ValueError(msg)
        if self.seed_upper_bound < 1:
            msg = f"seed_upper_bound must be positive, got {self.seed_upper_bound}"
            raise ValueError(msg)
        if self.workers is not None and self.workers < 1:
            msg = f"workers must be at least 1, got {self.workers}"
            raise ValueError(msg)
        if self.backend not in BACKENDS:
            msg = f"Unknown backend: {self.backend} (expected one of {', '.join(BACKENDS)})"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, object]:
        """Return the settings as a YAML-friendly dictionary."""
        return asdict(self)


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest slsweep.yaml by walking up from start_path.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        current = current.parent

    # Check root
    candidate = current / CONFIG_FILENAME
    if candidate.is_file():
        return candidate

    return None


def get_global_config_path() -> Path:
    """Get the global config file path (~/.slsweep/config.yaml)."""
    return Path.home() / ".slsweep" / "config.yaml"


def load_settings(config_path: Path | None = None) -> SweepSettings:
    """Load settings from a YAML file or defaults.

    Looks for config in:
    1. Provided config_path
    2. Nearest slsweep.yaml walking up from the cwd
    3. ~/.slsweep/config.yaml
    4. Defaults
    """
    settings = SweepSettings()

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            global_config = get_global_config_path()
            if global_config.exists():
                config_path = global_config
    elif not config_path.exists():
        msg = f"Config file not found: {config_path}"
        raise FileNotFoundError(msg)

    if config_path is None or not config_path.exists():
        return settings

    with config_path.open() as f:
        data = cast("dict[str, object]", yaml.safe_load(f) or {})

    for name in ("master_seed", "population_size", "seed_upper_bound"):
        value = data.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            setattr(settings, name, int(value))

    workers = data.get("workers")
    if isinstance(workers, int) and not isinstance(workers, bool):
        settings.workers = workers

    backend = data.get("backend")
    if isinstance(backend, str):
        settings.backend = backend

    log_name = data.get("log_name")
    if isinstance(log_name, str) and log_name:
        settings.log_name = log_name

    components = data.get("components")
    if isinstance(components, list) and all(isinstance(c, str) for c in components):
        settings.components = cast("list[str]", components)

    return settings


def write_settings(settings: SweepSettings, path: Path) -> None:
    """Write settings to a YAML file."""
    with path.open("w") as f:
        yaml.dump(settings.to_dict(), f, default_flow_style=False, sort_keys=False)
