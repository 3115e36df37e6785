# Copyright (c) Syntropy Systems
"""Deterministic seed plans shared by every configuration of a run."""
from __future__ import annotations

import random

DEFAULT_UPPER_BOUND = 10_000_000


def generate_seed_plan(
    master_seed: int,
    total_seeds: int,
    upper_bound: int = DEFAULT_UPPER_BOUND,
) -> tuple[int, ...]:
    """Draw total_seeds distinct seeds from [1, upper_bound].

    The plan depends only on (master_seed, total_seeds, upper_bound), so two
    runs with the same inputs evaluate every configuration against the same
    seeds in the same order.
    """
    if total_seeds < 1:
        msg = f"total_seeds must be at least 1, got {total_seeds}"
        raise ValueError(msg)
    if total_seeds > upper_bound:
        msg = f"Cannot draw {total_seeds} distinct seeds from [1, {upper_bound}]"
        raise ValueError(msg)

    rng = random.Random(master_seed)  # noqa: S311
    return tuple(rng.sample(range(1, upper_bound + 1), total_seeds))
