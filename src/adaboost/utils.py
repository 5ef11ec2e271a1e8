"""
Utility functions for boosting: misclassification impurity, label encoding,
input validation and metrics.

References:
- Freund, Y. & Schapire, R. E. (1997). A decision-theoretic generalization of
  on-line learning and an application to boosting.
- Friedman, J., Hastie, T., & Tibshirani, R. (2000). Additive logistic regression:
  a statistical view of boosting. Annals of Statistics, 28(2), 337-407.
"""

from typing import Any, Tuple
import numpy as np
from scipy.special import expit
from sklearn.metrics import accuracy_score, roc_auc_score

from .errors import DataError, DimensionMismatchError, EmptyTrainingSetError, LabelDomainError


# Clip for class probabilities in Real AdaBoost leaves; bounds the leaf margin
# at 0.5 * log((1 - PROBA_EPS) / PROBA_EPS).
PROBA_EPS = 1e-10

# Clip for the weighted error of a Discrete learner; a perfect learner gets
# the same finite coefficient as a Real leaf margin bound.
ERROR_EPS = 1e-10

# LogitBoost working response clip (Friedman et al. 2000, section 6).
Z_MAX = 4.0


# ===========================
# Split impurity
# ===========================

def misclass_impurity(w_pos: np.ndarray, w_total: np.ndarray) -> np.ndarray:
    """Weighted misclassification of a node labelled by its majority: min(W+, W-)."""
    w_pos = np.asarray(w_pos, dtype=np.float64)
    w_total = np.asarray(w_total, dtype=np.float64)
    return np.minimum(w_pos, w_total - w_pos)


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Numerically stable sigmoid function."""
    return expit(np.asarray(x, dtype=np.float64))


# ===========================
# Input handling
# ===========================

def as_feature_matrix(X: Any, n_features: int = None) -> np.ndarray:
    """
    Convert input to a finite float64 matrix of shape (n_samples, n_features).

    A 1-D input is treated as a single sample. If ``n_features`` is given the
    column count must match it.
    """
    try:
        X = np.asarray(X, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise DataError(f"Features must be numeric: {exc}") from exc

    if X.ndim == 1:
        X = X.reshape(1, -1)
    elif X.ndim != 2:
        raise DimensionMismatchError(f"Expected a 2-D feature matrix, got {X.ndim} dimensions")

    if n_features is not None and X.shape[1] != n_features:
        raise DimensionMismatchError(
            f"Expected {n_features} features per sample, got {X.shape[1]}"
        )
    if X.size and not np.all(np.isfinite(X)):
        raise DataError("Features contain NaN or infinite values")
    return X


def as_scalar(value: Any) -> Any:
    """Unwrap numpy scalars to plain Python values."""
    return value.item() if isinstance(value, np.generic) else value


def encode_labels(labels: Any) -> Tuple[np.ndarray, Tuple[Any, Any]]:
    """
    Encode a label vector to {-1, +1}.

    With two distinct labels the smaller maps to -1 and the larger to +1.
    A single label maps to -1 when it is a number <= 0 and to +1 otherwise.

    Returns:
        y: Encoded labels, shape (n_samples,).
        classes: (negative_label, positive_label); both slots hold the same
            label when only one class is present.
    """
    labels = np.asarray(labels)
    if labels.ndim != 1:
        labels = labels.ravel()
    if labels.size == 0:
        raise EmptyTrainingSetError("Training set contains no labels")

    classes = np.unique(labels)
    if len(classes) > 2:
        raise LabelDomainError(
            f"Boosting supports at most two classes, got {len(classes)}: {classes[:5].tolist()}"
        )

    if len(classes) == 2:
        y = np.where(labels == classes[1], 1.0, -1.0)
        return y, (as_scalar(classes[0]), as_scalar(classes[1]))

    label = as_scalar(classes[0])
    negative = isinstance(label, (int, float)) and not isinstance(label, bool) and label <= 0
    y = np.full(labels.shape[0], -1.0 if negative else 1.0)
    return y, (label, label)


def decode_labels(scores: np.ndarray, classes: Tuple[Any, Any]) -> np.ndarray:
    """Map decision values back to labels; a score >= 0 is the positive class."""
    scores = np.asarray(scores, dtype=np.float64)
    return np.where(scores >= 0, classes[1], classes[0])


# ===========================
# Metrics
# ===========================

def misclassification_rate(y_true: np.ndarray, scores: np.ndarray) -> float:
    """Fraction of encoded labels whose sign disagrees with the decision values."""
    predicted = np.where(np.asarray(scores) >= 0, 1.0, -1.0)
    return float(np.mean(predicted != np.asarray(y_true)))


def compute_metrics_classification(
    y_true: np.ndarray,
    scores: np.ndarray
) -> dict:
    """Compute classification metrics from encoded labels and decision values."""
    y_true = np.asarray(y_true)
    predicted = np.where(np.asarray(scores) >= 0, 1.0, -1.0)
    accuracy = accuracy_score(y_true, predicted)

    # ROC AUC only if both classes present
    if len(np.unique(y_true)) == 2:
        auc = roc_auc_score(y_true, scores)
    else:
        auc = np.nan

    return {
        "accuracy": accuracy,
        "error": 1.0 - accuracy,
        "roc_auc": auc
    }
