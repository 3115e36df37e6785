# Copyright (c) Syntropy Systems
"""Tests for seed plan generation."""

import pytest

from slsweep.seeds import generate_seed_plan


class TestSeedPlan:
    """Tests for generate_seed_plan."""

    def test_length_and_bounds(self) -> None:
        """Test the plan has K seeds inside [1, upper_bound]."""
        plan = generate_seed_plan(612022, 1000, 10_000_000)

        assert len(plan) == 1000
        assert all(1 <= seed <= 10_000_000 for seed in plan)

    def test_seeds_are_distinct(self) -> None:
        """Test seeds are drawn without replacement."""
        plan = generate_seed_plan(612022, 500, 600)

        assert len(set(plan)) == 500

    def test_deterministic(self) -> None:
        """Test the plan depends only on its inputs."""
        assert generate_seed_plan(7, 50) == generate_seed_plan(7, 50)

    def test_master_seed_changes_plan(self) -> None:
        """Test a different master seed gives a different plan."""
        assert generate_seed_plan(1, 50) != generate_seed_plan(2, 50)

    def test_whole_range(self) -> None:
        """Test K equal to the range size yields a permutation."""
        plan = generate_seed_plan(3, 10, 10)

        assert sorted(plan) == list(range(1, 11))

    def test_invalid_lengths(self) -> None:
        """Test impossible plans are refused."""
        with pytest.raises(ValueError, match="at least 1"):
            _ = generate_seed_plan(1, 0)

        with pytest.raises(ValueError, match="distinct"):
            _ = generate_seed_plan(1, 11, 10)
