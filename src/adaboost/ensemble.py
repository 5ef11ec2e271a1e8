"""
Trained boosting ensemble and its prediction rules.

The response of an ensemble is the additive score F(x) = Σ α_m h_m(x), with
h_m a ±1 vote (Discrete) or a real margin (Real, Logit, Gentle). Labels come
from the sign of F; confidences divide F by the configured ensemble size so
they stay in the same range whatever the number of rounds.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Tuple
import numpy as np

from .config import BoostType, FeatureType, SplitCriteria
from .errors import CorruptModelError, EmptyEnsembleError
from .utils import as_feature_matrix, decode_labels, sigmoid
from .weak import WeakLearner


def feature_type_vector(n_features: int) -> Tuple[FeatureType, ...]:
    """Column types of a training matrix: D numerical features and a categorical label."""
    return (FeatureType.NUMERICAL,) * n_features + (FeatureType.CATEGORICAL,)


@dataclass(frozen=True, eq=False)
class Ensemble:
    """
    Ordered (weak learner, coefficient) pairs with the settings needed to
    predict. Immutable once built.

    Attributes:
        learners: Weak learners in training order.
        coefficients: Coefficient α_m of each learner.
        boost_type: Variant the ensemble was trained with.
        split_criteria: Resolved split criterion used for growth.
        weak_count: Configured ensemble size, the divisor for confidences.
        n_features: Feature dimensionality D seen at training time.
        classes: (negative_label, positive_label).
        feature_types: Column types of the training matrix.
    """

    learners: Tuple[WeakLearner, ...]
    coefficients: Tuple[float, ...]
    boost_type: BoostType
    split_criteria: SplitCriteria
    weak_count: int
    n_features: int
    classes: Tuple[Any, Any]
    feature_types: Tuple[FeatureType, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "learners", tuple(self.learners))
        object.__setattr__(self, "coefficients", tuple(float(c) for c in self.coefficients))
        object.__setattr__(self, "classes", tuple(self.classes))
        if not self.feature_types:
            object.__setattr__(self, "feature_types", feature_type_vector(self.n_features))

        if not self.learners:
            raise EmptyEnsembleError("An ensemble needs at least one weak learner")
        if len(self.learners) != len(self.coefficients):
            raise ValueError(
                f"{len(self.learners)} learners but {len(self.coefficients)} coefficients"
            )
        if len(self.learners) > self.weak_count:
            raise ValueError(
                f"{len(self.learners)} learners exceed weak_count={self.weak_count}"
            )
        if len(self.classes) != 2:
            raise ValueError("classes must be a (negative, positive) pair")
        if self.n_features < 1:
            raise ValueError(f"n_features must be positive, got {self.n_features}")
        if not all(np.isfinite(self.coefficients)):
            raise ValueError("coefficients must be finite")

    def __len__(self) -> int:
        return len(self.learners)

    @property
    def complete(self) -> bool:
        """True when training ran the full configured number of rounds."""
        return len(self.learners) == self.weak_count

    @property
    def bound(self) -> float:
        """Upper bound of |confidence| for this ensemble."""
        return max(abs(c) * l.bound for l, c in zip(self.learners, self.coefficients))

    def _check(self, X: Any) -> np.ndarray:
        return as_feature_matrix(X, self.n_features)

    def decision_function(self, X: Any) -> np.ndarray:
        """
        Additive score F(x) = Σ α_m h_m(x).

        Args:
            X: Features, shape (n_samples, n_features) or a single sample.

        Returns:
            Scores, shape (n_samples,).
        """
        X = self._check(X)
        F = np.zeros(X.shape[0])
        for learner, alpha in zip(self.learners, self.coefficients):
            F += alpha * learner.predict(X)
        return F

    def staged_decision_function(self, X: Any) -> Iterator[np.ndarray]:
        """Yield the additive score after each learner in turn."""
        X = self._check(X)
        F = np.zeros(X.shape[0])
        for learner, alpha in zip(self.learners, self.coefficients):
            F = F + alpha * learner.predict(X)
            yield F

    def predict_label(self, X: Any) -> np.ndarray:
        """Class labels: the positive class where F(x) >= 0."""
        return decode_labels(self.decision_function(X), self.classes)

    def predict_confidence(self, X: Any) -> np.ndarray:
        """F(x) divided by the configured weak_count, not the trained size."""
        return self.decision_function(X) / self.weak_count

    def predict_proba(self, X: Any) -> np.ndarray:
        """
        Probability of the positive class, σ(2F(x)).

        This is the LogitBoost link; for the other variants it is the
        population minimiser of the exponential loss (Friedman et al. 2000).
        """
        return sigmoid(2.0 * self.decision_function(X))

    def to_dict(self) -> dict:
        return {
            "boost_type": self.boost_type.name,
            "split_criteria": self.split_criteria.name,
            "weak_count": self.weak_count,
            "n_features": self.n_features,
            "classes": list(self.classes),
            "coefficients": list(self.coefficients),
            "learners": [learner.to_dict() for learner in self.learners],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Ensemble":
        """Rebuild an ensemble, raising CorruptModelError on malformed input."""
        try:
            learners = [WeakLearner.from_dict(item) for item in data["learners"]]
            ensemble = cls(
                learners=learners,
                coefficients=data["coefficients"],
                boost_type=BoostType[data["boost_type"]],
                split_criteria=SplitCriteria[data["split_criteria"]],
                weak_count=int(data["weak_count"]),
                n_features=int(data["n_features"]),
                classes=data["classes"],
            )
        except CorruptModelError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError, EmptyEnsembleError) as exc:
            raise CorruptModelError(f"Malformed ensemble: {exc!r}") from exc

        for learner in ensemble.learners:
            internal = learner.feature[learner.feature >= 0]
            if np.any(internal >= ensemble.n_features):
                raise CorruptModelError("Weak learner splits on a feature beyond n_features")
        return ensemble

