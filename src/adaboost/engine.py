"""
Boosting loop shared by all AdaBoost variants.

Implements the round structure common to Discrete AdaBoost (Freund &
Schapire 1997) and Real, Gentle and LogitBoost (Friedman, Hastie &
Tibshirani 2000):

1. Initialise w_i = 1/N.
2. For m = 1 to M:
   a. Trim the lightest samples out of the weak-learner search.
   b. Fit h_m to the weighted training set.
   c. ε_m = Σ w_i [sign h_m(x_i) != y_i]; stop if ε_m >= 1/2.
   d. α_m = f(ε_m, variant); append (h_m, α_m).
   e. Reweight and renormalise; stop early if ε_m = 0.
3. F(x) = Σ α_m h_m(x).

The variants differ only in the leaf rule of h_m, the coefficient rule and
the reweighting law, all dispatched on ``BoostType``.

References:
- Freund, Y. & Schapire, R. E. (1997). A decision-theoretic generalization of
  on-line learning and an application to boosting. JCSS, 55(1), 119-139.
- Friedman, J., Hastie, T., & Tibshirani, R. (2000). Additive logistic regression:
  a statistical view of boosting. Annals of Statistics, 28(2), 337-407.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import numpy as np
from sklearn.model_selection import KFold, StratifiedKFold

from .config import BoostConfig, BoostType, SplitCriteria
from .ensemble import Ensemble
from .errors import EmptyEnsembleError
from .utils import ERROR_EPS, misclassification_rate
from .weak import WeakLearner, fit_weak_learner
from .weighting import SampleWeighting

logger = logging.getLogger(__name__)


class EngineState(Enum):
    INIT = "init"
    ROUND_ACTIVE = "round_active"
    CONVERGED = "converged"
    MAX_ROUNDS_REACHED = "max_rounds_reached"
    STOPPED = "stopped"  # A round's learner was no better than chance
    DONE = "done"


def discrete_coefficient(error: float) -> float:
    """α = 0.5 * log((1 - ε) / ε), with ε clipped so a perfect learner stays finite."""
    error = float(np.clip(error, ERROR_EPS, 1.0 - ERROR_EPS))
    return 0.5 * np.log((1.0 - error) / error)


# Real and Gentle leaves already carry the confidence, so α = 1. LogitBoost
# takes half a Newton step: F <- F + f / 2.
COEFFICIENT_RULES: Dict[BoostType, Callable[[float], float]] = {
    BoostType.DISCRETE: discrete_coefficient,
    BoostType.REAL: lambda error: 1.0,
    BoostType.GENTLE: lambda error: 1.0,
    BoostType.LOGIT: lambda error: 0.5,
}


class BoostEngine:
    """
    Drives one training run and emits the finished ``Ensemble``.

    The engine moves INIT -> ROUND_ACTIVE (repeated) -> CONVERGED,
    MAX_ROUNDS_REACHED or STOPPED -> DONE. ``termination`` keeps the reason
    the loop ended once ``state`` is DONE.

    Args:
        config: Boosting options; ``folds``, ``trim_rate``, ``max_depth`` and
            ``weak_count`` drive the loop.
    """

    def __init__(self, config: BoostConfig):
        self.config = config
        self.state = EngineState.INIT
        self.termination: Optional[EngineState] = None

        # Training history
        self.errors_: List[float] = []        # Weighted error per round
        self.coefficients_: List[float] = []
        self.train_scores_: List[float] = []  # Training misclassification rate
        self.cv_scores_: List[float] = []     # Mean held-out error per round
        self.n_active_: List[int] = []        # Samples kept by trimming

        if config.verbose:
            logger.setLevel(logging.INFO)

    def _criteria(self) -> SplitCriteria:
        criteria = self.config.resolve_criteria()
        requested = self.config.split_criteria
        if requested not in (SplitCriteria.DEFAULT, criteria):
            logger.warning(
                f"{requested.name} split criterion is not available for "
                f"{self.config.boost_type.name} boosting; using {criteria.name}"
            )
        return criteria

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        classes: Tuple[Any, Any] = (-1.0, 1.0)
    ) -> Ensemble:
        """
        Run the boosting loop.

        Args:
            X: Validated training features, shape (n_samples, n_features).
            y: Encoded labels in {-1, +1}, shape (n_samples,).
            classes: (negative_label, positive_label) recorded on the ensemble.

        Returns:
            The trained ensemble, holding between 1 and ``weak_count`` learners.

        Raises:
            EmptyEnsembleError: If the first round's learner is no better than
                chance.
        """
        config = self.config
        self.state = EngineState.INIT
        self.termination = None
        self.errors_ = []
        self.coefficients_ = []
        self.train_scores_ = []
        self.cv_scores_ = []
        self.n_active_ = []

        max_rounds = config.weak_count
        if config.folds > 0:
            max_rounds = self._cross_validate(X, y)

        criteria = self._criteria()
        weighting = SampleWeighting(y, config.boost_type)
        coefficient_rule = COEFFICIENT_RULES[config.boost_type]
        learners: List[WeakLearner] = []
        coefficients: List[float] = []

        for m in range(max_rounds):
            self.state = EngineState.ROUND_ACTIVE
            active = weighting.trim(config.trim_rate)
            learner = fit_weak_learner(
                X, y, weighting.weights,
                boost_type=config.boost_type,
                criteria=criteria,
                max_depth=config.max_depth,
                target=weighting.target,
                active=active
            )
            outputs = learner.predict(X)
            error = weighting.weighted_error(outputs)

            if error >= 0.5:
                if not learners:
                    raise EmptyEnsembleError(
                        f"First weak learner has weighted error {error:.4f} >= 0.5; "
                        "no ensemble could be built"
                    )
                self.termination = EngineState.STOPPED
                logger.info(
                    f"Stopping at round {m + 1}: weighted error {error:.4f} >= 0.5, "
                    f"keeping {len(learners)} learners"
                )
                break

            alpha = coefficient_rule(error)
            learners.append(learner)
            coefficients.append(alpha)
            weighting.update(outputs, alpha)

            self.errors_.append(error)
            self.coefficients_.append(alpha)
            self.n_active_.append(weighting.n_active)
            self.train_scores_.append(misclassification_rate(y, weighting.scores))

            if (m + 1) % 10 == 0:
                logger.info(
                    f"Round {m + 1}/{max_rounds}: weighted_error={error:.6f}, "
                    f"alpha={alpha:.4f}, train_error={self.train_scores_[-1]:.6f}"
                )

            if error <= 0.0:
                self.termination = EngineState.CONVERGED
                logger.info(f"Converged at round {m + 1}: weighted error is zero")
                break
        else:
            if max_rounds < config.weak_count:
                self.termination = EngineState.CONVERGED
                logger.info(f"Stopped after {max_rounds} rounds chosen by cross-validation")
            else:
                self.termination = EngineState.MAX_ROUNDS_REACHED

        self.state = EngineState.DONE
        return Ensemble(
            learners=learners,
            coefficients=coefficients,
            boost_type=config.boost_type,
            split_criteria=criteria,
            weak_count=config.weak_count,
            n_features=X.shape[1],
            classes=classes,
        )

    def _cross_validate(self, X: np.ndarray, y: np.ndarray) -> int:
        """
        Pick the number of rounds from the held-out error of k-fold runs.

        Each fold trains a shadow engine with the same options, records the
        staged misclassification rate on its held-out part, and the mean over
        folds is minimised. The earliest round reaching the minimum wins.

        Returns:
            Number of rounds for the full run (``weak_count`` if CV cannot run).
        """
        config = self.config
        n_samples = len(y)
        folds = min(config.folds, n_samples)
        if folds < 2:
            logger.warning(
                f"Cross-validation needs at least 2 folds (folds={config.folds}, "
                f"n_samples={n_samples}); early stopping disabled"
            )
            return config.weak_count
        if folds < config.folds:
            logger.warning(f"Clamping folds from {config.folds} to {folds} (n_samples={n_samples})")

        _, counts = np.unique(y, return_counts=True)
        if len(counts) == 2 and counts.min() >= folds:
            splitter = StratifiedKFold(n_splits=folds, shuffle=True, random_state=config.random_state)
        else:
            splitter = KFold(n_splits=folds, shuffle=True, random_state=config.random_state)

        shadow_config = config.replace(folds=0, verbose=False)
        staged = np.full((folds, config.weak_count), np.nan)

        for k, (train_idx, test_idx) in enumerate(splitter.split(X, y)):
            try:
                ensemble = BoostEngine(shadow_config).fit(X[train_idx], y[train_idx])
            except EmptyEnsembleError:
                logger.warning(f"Fold {k + 1}/{folds} produced no learner; skipping it")
                continue
            errors = [
                misclassification_rate(y[test_idx], F)
                for F in ensemble.staged_decision_function(X[test_idx])
            ]
            staged[k, :len(errors)] = errors
            # An early-stopped fold keeps predicting with its final ensemble.
            staged[k, len(errors):] = errors[-1]

        if np.all(np.isnan(staged)):
            logger.warning("No fold produced an ensemble; early stopping disabled")
            return config.weak_count

        mean_errors = np.nanmean(staged, axis=0)
        self.cv_scores_ = mean_errors.tolist()
        best = int(np.argmin(mean_errors)) + 1
        logger.info(
            f"{folds}-fold cross-validation: best held-out error {mean_errors[best - 1]:.6f} "
            f"at {best}/{config.weak_count} rounds"
        )
        return best
