# Copyright (c) Syntropy Systems
"""Enumeration of estimator-component combinations."""
from __future__ import annotations

import itertools
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

SEPARATOR = "_"
CHECKPOINT_SUFFIX = ".json"

_CHECKPOINT_NAME = re.compile(r"^(?P<ordinal>[1-9]\d*)_(?P<identity>.+)\.json$")


@dataclass(frozen=True)
class Configuration:
    """One non-empty subset of the base component set."""

    ordinal: int
    components: tuple[str, ...]

    @property
    def identity(self) -> str:
        """Canonical name: components joined in base-set order."""
        return SEPARATOR.join(self.components)

    @property
    def label(self) -> str:
        """Ordinal-prefixed identity, e.g. ``3_glm_rpart``."""
        return f"{self.ordinal}{SEPARATOR}{self.identity}"

    @property
    def filename(self) -> str:
        """Checkpoint file name for this configuration."""
        return f"{self.label}{CHECKPOINT_SUFFIX}"

    @property
    def size(self) -> int:
        return len(self.components)


def validate_components(components: Sequence[str]) -> None:
    """Reject base sets that cannot produce unambiguous identities."""
    if len(components) < 1:
        msg = "Base component set must contain at least one component"
        raise ValueError(msg)

    seen: set[str] = set()
    for name in components:
        if not name:
            msg = "Component names must be non-empty"
            raise ValueError(msg)
        if SEPARATOR in name or "/" in name:
            msg = f"Component name '{name}' must not contain '{SEPARATOR}' or '/'"
            raise ValueError(msg)
        if name in seen:
            msg = f"Duplicate component: {name}"
            raise ValueError(msg)
        seen.add(name)


def combination_count(m: int) -> int:
    """Return the number of non-empty subsets of an m-element set."""
    if m < 1:
        msg = f"Base set size must be at least 1, got {m}"
        raise ValueError(msg)
    return 2**m - 1


def enumerate_configurations(components: Sequence[str]) -> Iterator[Configuration]:
    """Generate every non-empty subset of components.

    Subsets come in increasing size and, within a size, in the
    lexicographic-by-index order of ``itertools.combinations``. Ordinals
    start at 1 and are stable for a given base set.
    """
    validate_components(components)
    base = tuple(components)

    ordinal = 1
    for size in range(1, len(base) + 1):
        for combo in itertools.combinations(base, size):
            yield Configuration(ordinal=ordinal, components=combo)
            ordinal += 1


def parse_checkpoint_name(name: str) -> tuple[int, str] | None:
    """Split a checkpoint file name into (ordinal, identity).

    Returns None for names that are not checkpoint files.
    """
    match = _CHECKPOINT_NAME.match(name)
    if match is None:
        return None
    return int(match.group("ordinal")), match.group("identity")
