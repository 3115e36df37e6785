# Copyright (c) Syntropy Systems
"""Tests for the synthetic population, sample draw and baseline."""

import math

import numpy as np
import pandas as pd
import pytest

from slsweep.population import (
    POPULATION_COLUMNS,
    baseline_summary,
    compute_truth,
    draw_sample,
    generate_population,
    marginal_odds_ratio,
)


class TestPopulation:
    """Tests for generate_population and compute_truth."""

    def test_shape_and_columns(self, population: pd.DataFrame) -> None:
        """Test the population has one row per unit and the expected columns."""
        assert len(population) == 20_000
        assert list(population.columns) == list(POPULATION_COLUMNS)
        assert all(population[c].dtype == np.int8 for c in population.columns)

    def test_value_ranges(self, population: pd.DataFrame) -> None:
        """Test covariates, treatment and outcomes stay in their supports."""
        assert set(population["w1"].unique()) <= {0, 1}
        assert set(population["w2"].unique()) <= {0, 1}
        assert population["w3"].between(0, 4).all()
        assert population["w4"].between(0, 5).all()
        for column in ("A", "Y", "Y1", "Y0"):
            assert set(population[column].unique()) <= {0, 1}

    def test_observed_outcome_is_consistent(self, population: pd.DataFrame) -> None:
        """Test Y equals Y1 for treated and Y0 for control units."""
        treated = population["A"] == 1
        assert (population.loc[treated, "Y"] == population.loc[treated, "Y1"]).all()
        assert (population.loc[~treated, "Y"] == population.loc[~treated, "Y0"]).all()

    def test_deterministic(self) -> None:
        """Test the same seed reproduces the same population."""
        pd.testing.assert_frame_equal(
            generate_population(1000, 42),
            generate_population(1000, 42),
        )

    def test_invalid_size(self) -> None:
        """Test a non-positive size is refused."""
        with pytest.raises(ValueError):
            _ = generate_population(0, 1)

    def test_truth(self, population: pd.DataFrame) -> None:
        """Test the true effects come from the counterfactual columns."""
        truth = compute_truth(population)

        assert truth.true_ey1 == pytest.approx(population["Y1"].mean())
        assert truth.true_ate == pytest.approx(truth.true_ey1 - truth.true_ey0)
        assert truth.true_ate > 0
        assert truth.true_mor > 1

    def test_marginal_odds_ratio(self) -> None:
        """Test the odds ratio of equal means is one."""
        assert marginal_odds_ratio(0.5, 0.5) == 1.0
        assert marginal_odds_ratio(0.75, 0.5) == pytest.approx(3.0)


class TestWorkingSample:
    """Tests for draw_sample and baseline_summary."""

    def test_size_and_arrays(self, working_sample) -> None:
        """Test the sample exposes aligned arrays of length N."""
        assert working_sample.size == 400
        assert working_sample.a.shape == (400,)
        assert working_sample.w.shape == (400, 4)
        assert len(working_sample.frame) == 400

    def test_arrays_are_read_only(self, working_sample) -> None:
        """Test workers cannot mutate the shared sample."""
        with pytest.raises(ValueError):
            working_sample.y[0] = 1.0

    def test_reproducible(self, population: pd.DataFrame) -> None:
        """Test the same (population, N, master seed) gives the same sample."""
        first = draw_sample(population, 100, 612022)
        second = draw_sample(population, 100, 612022)

        pd.testing.assert_frame_equal(first.frame, second.frame)

    def test_sample_size_shifts_draw(self, population: pd.DataFrame) -> None:
        """Test different N values draw different samples."""
        small = draw_sample(population, 100, 612022)
        larger = draw_sample(population, 101, 612022)

        assert not small.frame.equals(larger.frame.iloc[:100])

    @pytest.mark.parametrize("n", [0, 20_001])
    def test_out_of_range(self, population: pd.DataFrame, n: int) -> None:
        """Test N outside [1, population size] is refused."""
        with pytest.raises(ValueError, match="Sample size"):
            _ = draw_sample(population, n, 612022)

    def test_baseline_summary(self, working_sample) -> None:
        """Test the g-computation baseline is finite and plausible."""
        baseline = baseline_summary(working_sample)

        assert math.isfinite(baseline.ate_hat)
        assert -1 < baseline.ate_hat < 1
        assert baseline.mor_hat > 0
