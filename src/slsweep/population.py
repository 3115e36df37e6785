# Copyright (c) Syntropy Systems
"""Synthetic population, working-sample draw and g-computation baseline.

The data-generating process follows the binary-treatment TMLE tutorial of
Luque-Fernandez et al. (2018): four covariates, a rare treatment and a
binary outcome with known counterfactuals.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.special import expit

from slsweep.models.checkpoint import BaselineSummary
from slsweep.models.run import TruthSummary

logger = logging.getLogger(__name__)

COVARIATES = ("w1", "w2", "w3", "w4")
POPULATION_COLUMNS = (*COVARIATES, "A", "Y", "Y1", "Y0")


@dataclass(frozen=True)
class WorkingSample:
    """Read-only arrays shared by every configuration and seed of a run."""

    y: np.ndarray
    a: np.ndarray
    w: np.ndarray
    frame: pd.DataFrame

    @property
    def size(self) -> int:
        return int(self.y.shape[0])


def generate_population(size: int, seed: int) -> pd.DataFrame:
    """Generate the synthetic reference population."""
    if size < 1:
        msg = f"Population size must be positive, got {size}"
        raise ValueError(msg)

    rng = np.random.default_rng(seed)
    w1 = rng.binomial(1, 0.5, size)
    w2 = rng.binomial(1, 0.65, size)
    w3 = np.round(rng.uniform(0, 4, size))
    w4 = np.round(rng.uniform(0, 5, size))
    a = rng.binomial(1, expit(-5 + 0.05 * w2 + 0.25 * w3 + 0.6 * w4 + 0.4 * w2 * w4))

    # Counterfactual outcomes
    linear = -0.1 * w1 + 0.35 * w2 + 0.25 * w3 + 0.20 * w4 + 0.15 * w2 * w4
    y1 = rng.binomial(1, expit(-1 + 1 + linear))
    y0 = rng.binomial(1, expit(-1 + 0 + linear))

    # Observed outcome
    y = y1 * a + y0 * (1 - a)

    return pd.DataFrame(
        {
            "w1": w1.astype(np.int8),
            "w2": w2.astype(np.int8),
            "w3": w3.astype(np.int8),
            "w4": w4.astype(np.int8),
            "A": a.astype(np.int8),
            "Y": y.astype(np.int8),
            "Y1": y1.astype(np.int8),
            "Y0": y0.astype(np.int8),
        },
        columns=list(POPULATION_COLUMNS),
    )


def marginal_odds_ratio(ey1: float, ey0: float) -> float:
    """Return the marginal odds ratio for two outcome means."""
    return (ey1 * (1 - ey0)) / ((1 - ey1) * ey0)


def compute_truth(population: pd.DataFrame) -> TruthSummary:
    """Compute the true ATE and MOR from the latent counterfactuals."""
    ey1 = float(population["Y1"].mean())
    ey0 = float(population["Y0"].mean())
    return TruthSummary(
        true_ey1=ey1,
        true_ey0=ey0,
        true_ate=ey1 - ey0,
        true_mor=marginal_odds_ratio(ey1, ey0),
    )


def draw_sample(population: pd.DataFrame, n: int, master_seed: int) -> WorkingSample:
    """Draw the working sample of size n without replacement.

    The draw is seeded with ``master_seed + n`` so different sample sizes get
    different, but reproducible, samples from the same population.
    """
    if not 1 <= n <= len(population):
        msg = f"Sample size must be in [1, {len(population)}], got {n}"
        raise ValueError(msg)

    rng = np.random.default_rng(master_seed + n)
    indices = rng.choice(len(population), size=n, replace=False)
    frame = population.iloc[indices].reset_index(drop=True)

    y = frame["Y"].to_numpy(dtype=float)
    a = frame["A"].to_numpy(dtype=float)
    w = frame[list(COVARIATES)].to_numpy(dtype=float)
    for array in (y, a, w):
        array.setflags(write=False)

    return WorkingSample(y=y, a=a, w=w, frame=frame)


def baseline_summary(sample: WorkingSample) -> BaselineSummary:
    """Main-terms logistic g-computation of the ATE and MOR.

    Fits ``Y ~ A + w1 + w2 + w3 + w4`` and averages the predicted outcome
    under treatment and under control.
    """
    design = sm.add_constant(np.column_stack([sample.a, sample.w]), has_constant="add")
    model = sm.GLM(sample.y, design, family=sm.families.Binomial()).fit()

    treated = design.copy()
    treated[:, 1] = 1.0
    control = design.copy()
    control[:, 1] = 0.0

    q1w = np.asarray(model.predict(treated))
    q0w = np.asarray(model.predict(control))
    ate_hat = float(np.mean(q1w - q0w))
    mor_hat = marginal_odds_ratio(float(np.mean(q1w)), float(np.mean(q0w)))
    logger.debug("Baseline g-computation: ATE_hat=%s MOR_hat=%s", ate_hat, mor_hat)

    return BaselineSummary(ate_hat=ate_hat, mor_hat=mor_hat)
