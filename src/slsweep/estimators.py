# Copyright (c) Syntropy Systems
"""Targeted maximum likelihood estimation of the average treatment effect.

The driver treats the estimator as an opaque callable. Any function with
the ``Estimator`` signature can replace ``tmle_estimate``; it must be a
module-level function when the process backend is used.
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import numpy as np
import statsmodels.api as sm
from scipy.special import expit, logit
from scipy.stats import norm

from slsweep.learners import fit_super_learner

if TYPE_CHECKING:
    from collections.abc import Sequence

Q_BOUNDS = (0.005, 0.995)
G_BOUNDS = (0.025, 0.975)
CONFIDENCE_LEVEL = 0.95


@dataclass(frozen=True)
class Estimate:
    """Point estimate and inference for one trial."""

    psi: float
    variance: float
    ci_lower: float
    ci_upper: float
    p_value: float
    q_weights: dict[str, float] = field(default_factory=dict)
    g_weights: dict[str, float] = field(default_factory=dict)


class Estimator(Protocol):
    def __call__(
        self,
        y: np.ndarray,
        a: np.ndarray,
        w: np.ndarray,
        components: Sequence[str],
        seed: int,
    ) -> Estimate: ...


def estimator_name(estimator: object) -> str:
    """Return a stable dotted name used to record the estimator in run.json."""
    module = getattr(estimator, "__module__", None) or type(estimator).__module__
    qualname = getattr(estimator, "__qualname__", None) or type(estimator).__qualname__
    return f"{module}.{qualname}"


def wald_inference(psi: float, variance: float) -> tuple[float, float, float]:
    """Return (ci_lower, ci_upper, p_value) for a normal approximation."""
    se = float(np.sqrt(variance))
    z = norm.ppf(0.5 + CONFIDENCE_LEVEL / 2)
    p_value = float(2 * norm.sf(abs(psi) / se)) if se > 0 else float("nan")
    return psi - z * se, psi + z * se, p_value


def tmle_estimate(
    y: np.ndarray,
    a: np.ndarray,
    w: np.ndarray,
    components: Sequence[str],
    seed: int,
) -> Estimate:
    """Estimate the ATE of binary a on binary y, adjusting for w.

    Q(A, W) and g(W) are each fitted by a super learner over components.
    The initial fit is then updated along the clever covariate
    ``A/g - (1-A)/(1-g)`` by a logistic fluctuation with no intercept.
    """
    y = np.asarray(y, dtype=float)
    a = np.asarray(a, dtype=float)
    w = np.asarray(w, dtype=float)
    n = len(y)
    if n < 2:
        msg = f"TMLE needs at least 2 observations, got {n}"
        raise ValueError(msg)

    # Initial outcome regression
    xa = np.column_stack([a, w])
    q_fit = fit_super_learner(components, xa, y, seed)
    q_aw = np.clip(q_fit.predict(xa), *Q_BOUNDS)
    q_1w = np.clip(q_fit.predict(np.column_stack([np.ones(n), w])), *Q_BOUNDS)
    q_0w = np.clip(q_fit.predict(np.column_stack([np.zeros(n), w])), *Q_BOUNDS)

    # Treatment mechanism
    g_fit = fit_super_learner(components, w, a, seed)
    g_1w = np.clip(g_fit.predict(w), *G_BOUNDS)

    # Targeting step
    h_1w = 1.0 / g_1w
    h_0w = -1.0 / (1.0 - g_1w)
    h_aw = a * h_1w + (1 - a) * h_0w
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", module="statsmodels")
        fluctuation = sm.GLM(
            y,
            h_aw.reshape(-1, 1),
            family=sm.families.Binomial(),
            offset=logit(q_aw),
        ).fit()
    epsilon = float(np.asarray(fluctuation.params)[0])
    if not np.isfinite(epsilon):
        msg = "Fluctuation parameter did not converge"
        raise FloatingPointError(msg)

    q_aw_star = expit(logit(q_aw) + epsilon * h_aw)
    q_1w_star = expit(logit(q_1w) + epsilon * h_1w)
    q_0w_star = expit(logit(q_0w) + epsilon * h_0w)

    psi = float(np.mean(q_1w_star - q_0w_star))
    influence = h_aw * (y - q_aw_star) + q_1w_star - q_0w_star - psi
    variance = float(np.var(influence, ddof=1) / n)
    ci_lower, ci_upper, p_value = wald_inference(psi, variance)

    return Estimate(
        psi=psi,
        variance=variance,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        p_value=p_value,
        q_weights=q_fit.weights,
        g_weights=g_fit.weights,
    )
