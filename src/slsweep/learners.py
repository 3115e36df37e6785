# Copyright (c) Syntropy Systems
"""Candidate learners and the super learner that combines them.

Every learner is a factory taking a random seed and returning an unfitted
binary classifier with ``fit`` and ``predict_proba``. Names mirror the
SuperLearner wrappers they stand in for.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Protocol

import numpy as np
import statsmodels.api as sm
from scipy.optimize import nnls
from sklearn.ensemble import RandomForestClassifier
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegression, LogisticRegressionCV
from sklearn.model_selection import KFold
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import PolynomialFeatures, SplineTransformer, StandardScaler
from sklearn.tree import DecisionTreeClassifier

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

CV_FOLDS = 10


class Classifier(Protocol):
    def fit(self, x: np.ndarray, y: np.ndarray) -> object: ...

    def predict_proba(self, x: np.ndarray) -> np.ndarray: ...


class GLMClassifier:
    """Unpenalized logistic regression fitted with statsmodels."""

    def __init__(self, interactions: bool = False) -> None:  # noqa: FBT001, FBT002
        self.interactions = interactions
        self._expand = PolynomialFeatures(
            degree=2, interaction_only=True, include_bias=False,
        ) if interactions else None
        self._result = None

    def _design(self, x: np.ndarray, *, fit: bool) -> np.ndarray:
        if self._expand is not None:
            x = self._expand.fit_transform(x) if fit else self._expand.transform(x)
        return sm.add_constant(x, has_constant="add")

    def fit(self, x: np.ndarray, y: np.ndarray) -> GLMClassifier:
        design = self._design(x, fit=True)
        model = sm.GLM(y, design, family=sm.families.Binomial())
        self._result = model.fit()
        return self

    def predict_proba(self, x: np.ndarray) -> np.ndarray:
        if self._result is None:
            msg = "GLMClassifier must be fitted before predicting"
            raise RuntimeError(msg)
        p1 = np.asarray(self._result.predict(self._design(x, fit=False)))
        return np.column_stack([1.0 - p1, p1])


class MeanClassifier:
    """Intercept-only learner: predicts the training prevalence."""

    def __init__(self) -> None:
        self._p1 = None

    def fit(self, x: np.ndarray, y: np.ndarray) -> MeanClassifier:
        _ = x
        if len(y) == 0:
            msg = "Cannot fit on an empty training set"
            raise ValueError(msg)
        self._p1 = float(np.mean(y))
        return self

    def predict_proba(self, x: np.ndarray) -> np.ndarray:
        if self._p1 is None:
            msg = "MeanClassifier must be fitted before predicting"
            raise RuntimeError(msg)
        p1 = np.full(x.shape[0], self._p1)
        return np.column_stack([1.0 - p1, p1])


def _glm(seed: int) -> Classifier:
    _ = seed
    return GLMClassifier()


def _glm_interaction(seed: int) -> Classifier:
    _ = seed
    return GLMClassifier(interactions=True)


def _bayesglm(seed: int) -> Classifier:
    return make_pipeline(
        StandardScaler(),
        LogisticRegression(C=1.0, max_iter=1000, random_state=seed),
    )


def _rpart(seed: int) -> Classifier:
    return DecisionTreeClassifier(
        min_samples_split=20, min_samples_leaf=7, random_state=seed,
    )


def _rpart_prune(seed: int) -> Classifier:
    return DecisionTreeClassifier(
        min_samples_split=20, min_samples_leaf=7, ccp_alpha=0.005, random_state=seed,
    )


def _ranger(seed: int) -> Classifier:
    return RandomForestClassifier(
        n_estimators=500, min_samples_leaf=1, n_jobs=1, random_state=seed,
    )


def _glmnet(seed: int) -> Classifier:
    return make_pipeline(
        StandardScaler(),
        LogisticRegressionCV(
            Cs=10,
            cv=5,
            penalty="l1",
            solver="liblinear",
            max_iter=1000,
            random_state=seed,
        ),
    )


def _gam(seed: int) -> Classifier:
    return make_pipeline(
        SplineTransformer(n_knots=3, degree=2),
        LogisticRegression(C=10.0, max_iter=1000, random_state=seed),
    )


def _mean(seed: int) -> Classifier:
    _ = seed
    return MeanClassifier()


LEARNERS: dict[str, Callable[[int], Classifier]] = {
    "glm": _glm,
    "glm.interaction": _glm_interaction,
    "bayesglm": _bayesglm,
    "rpart": _rpart,
    "rpart.prune": _rpart_prune,
    "ranger": _ranger,
    "glmnet": _glmnet,
    "gam": _gam,
    "mean": _mean,
}


def get_learner(name: str) -> Callable[[int], Classifier]:
    """Look up a learner factory by name."""
    try:
        return LEARNERS[name]
    except KeyError:
        msg = f"Unknown learner: {name} (available: {', '.join(LEARNERS)})"
        raise ValueError(msg) from None


def positive_proba(model: Classifier, x: np.ndarray) -> np.ndarray:
    """Return P(y=1 | x), tolerating models fitted on a single class."""
    proba = np.asarray(model.predict_proba(x))
    classes = getattr(model, "classes_", None)
    if classes is None:
        return proba[:, -1]
    labels = [float(c) for c in classes]
    if 1.0 in labels:
        return proba[:, labels.index(1.0)]
    return np.zeros(x.shape[0])


def fit_learner(name: str, x: np.ndarray, y: np.ndarray, seed: int) -> Classifier:
    """Fit one named learner, silencing convergence chatter."""
    model = get_learner(name)(seed)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        warnings.simplefilter("ignore", RuntimeWarning)
        warnings.filterwarnings("ignore", module="statsmodels")
        _ = model.fit(x, y)
    return model


@dataclass
class SuperLearnerFit:
    """A fitted convex combination of learners."""

    models: dict[str, Classifier]
    weights: dict[str, float]
    dropped: list[str] = field(default_factory=list)

    def predict(self, x: np.ndarray) -> np.ndarray:
        """Predict P(y=1 | x) as the weighted sum of learner predictions."""
        prediction = np.zeros(x.shape[0])
        for name, weight in self.weights.items():
            if weight > 0:
                prediction += weight * positive_proba(self.models[name], x)
        return prediction


def _nnls_weights(predictions: np.ndarray, y: np.ndarray) -> np.ndarray:
    coef, _residual = nnls(predictions, y)
    total = coef.sum()
    if total <= 0 or not np.isfinite(total):
        return np.full(predictions.shape[1], 1.0 / predictions.shape[1])
    return coef / total


def fit_super_learner(
    library: Sequence[str],
    x: np.ndarray,
    y: np.ndarray,
    seed: int,
    folds: int = CV_FOLDS,
) -> SuperLearnerFit:
    """Fit a super learner over library with V-fold cross-validation.

    Learners that raise during cross-validation are dropped from the
    library. A RuntimeError is raised only when every learner fails.
    """
    if not library:
        msg = "Super learner library is empty"
        raise ValueError(msg)

    names = list(library)
    for name in names:
        _ = get_learner(name)

    if len(names) == 1:
        name = names[0]
        return SuperLearnerFit(models={name: fit_learner(name, x, y, seed)}, weights={name: 1.0})

    n_splits = min(folds, len(y))
    if n_splits < 2:
        msg = f"Need at least 2 observations for cross-validation, got {len(y)}"
        raise ValueError(msg)
    splitter = KFold(n_splits=n_splits, shuffle=True, random_state=seed % (2**32))

    cv_predictions: dict[str, np.ndarray] = {}
    dropped: list[str] = []
    for name in names:
        column = np.empty(len(y))
        try:
            for train, test in splitter.split(x):
                model = fit_learner(name, x[train], y[train], seed)
                column[test] = positive_proba(model, x[test])
        except Exception as exc:  # noqa: BLE001
            logger.debug("Dropping learner %s from library: %s", name, exc)
            dropped.append(name)
            continue
        cv_predictions[name] = column

    kept = [name for name in names if name in cv_predictions]
    if not kept:
        msg = f"All learners failed during cross-validation: {', '.join(names)}"
        raise RuntimeError(msg)

    matrix = np.column_stack([cv_predictions[name] for name in kept])
    weights = dict(zip(kept, (float(v) for v in _nnls_weights(matrix, y))))

    models = {
        name: fit_learner(name, x, y, seed) for name in kept if weights[name] > 0
    }
    weights = {name: weight for name, weight in weights.items() if name in models}
    return SuperLearnerFit(models=models, weights=weights, dropped=dropped)
