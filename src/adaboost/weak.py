"""
Weak learners: weighted decision trees of bounded depth.

A learner with ``max_depth=1`` is a decision stump: one feature, one
threshold, and a polarity given by the signs of its two leaf values. Trees
are stored as flat node arrays, the way scikit-learn stores ``tree_``, so
prediction is a vectorised walk and persistence is a handful of arrays.

Leaf values depend on the boosting variant (Friedman et al. 2000):
- Discrete: weighted majority vote in {-1, +1}.
- Real: half log-odds of the weighted positive fraction.
- Gentle: weighted mean of the ±1 labels.
- Logit: weighted mean of the working response.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
import logging
import numpy as np
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

from .config import BoostType, SplitCriteria
from .errors import CorruptModelError
from .utils import PROBA_EPS, misclass_impurity

logger = logging.getLogger(__name__)

LEAF = -1


# ===========================
# Leaf rules
# ===========================

def _positive_mass(y: np.ndarray, w: np.ndarray) -> Tuple[float, float]:
    total = float(np.sum(w))
    if total <= 0:
        # All weights underflowed; fall back to counting samples.
        w = np.ones_like(w)
        total = float(len(w))
    return float(np.sum(w[y > 0])), total


def discrete_leaf(y: np.ndarray, t: np.ndarray, w: np.ndarray) -> float:
    """Weighted majority label; ties vote +1."""
    w_pos, total = _positive_mass(y, w)
    return 1.0 if w_pos >= total - w_pos else -1.0


def real_leaf(y: np.ndarray, t: np.ndarray, w: np.ndarray) -> float:
    """f = 0.5 * log(p / (1 - p)), p the weighted positive fraction, clipped."""
    w_pos, total = _positive_mass(y, w)
    p = np.clip(w_pos / total, PROBA_EPS, 1.0 - PROBA_EPS)
    return float(0.5 * np.log(p / (1.0 - p)))


def mean_leaf(y: np.ndarray, t: np.ndarray, w: np.ndarray) -> float:
    """Weighted mean of the regression target."""
    total = float(np.sum(w))
    if total <= 0:
        return float(np.mean(t))
    return float(np.sum(w * t) / total)


LEAF_RULES: Dict[BoostType, Callable[[np.ndarray, np.ndarray, np.ndarray], float]] = {
    BoostType.DISCRETE: discrete_leaf,
    BoostType.REAL: real_leaf,
    BoostType.GENTLE: mean_leaf,
    BoostType.LOGIT: mean_leaf,
}


# ===========================
# Tree model
# ===========================

@dataclass(frozen=True, eq=False)
class WeakLearner:
    """
    Fitted decision tree stored as parallel node arrays.

    Node ``i`` is a leaf when ``feature[i] == -1``; otherwise samples with
    ``x[feature[i]] <= threshold[i]`` go to ``left[i]`` and the rest to
    ``right[i]``. Node 0 is the root and children always have larger
    indices than their parent.

    Attributes:
        feature: Split feature per node, -1 for leaves.
        threshold: Split threshold per node (unused for leaves).
        left: Left child index per node, -1 for leaves.
        right: Right child index per node, -1 for leaves.
        value: Vote or margin per node (meaningful for leaves).
    """

    feature: np.ndarray
    threshold: np.ndarray
    left: np.ndarray
    right: np.ndarray
    value: np.ndarray

    def __post_init__(self):
        arrays = {}
        for name, dtype in (("feature", np.int64), ("threshold", np.float64),
                            ("left", np.int64), ("right", np.int64),
                            ("value", np.float64)):
            arr = np.array(getattr(self, name), dtype=dtype).ravel()
            arr.setflags(write=False)
            arrays[name] = arr
            object.__setattr__(self, name, arr)

        n_nodes = len(arrays["feature"])
        if n_nodes == 0 or any(len(a) != n_nodes for a in arrays.values()):
            raise CorruptModelError("Weak learner node arrays are empty or of unequal length")
        if np.any(arrays["feature"] < LEAF):
            raise CorruptModelError("Weak learner has negative split features")
        internal = np.nonzero(arrays["feature"] != LEAF)[0]
        for child in (arrays["left"][internal], arrays["right"][internal]):
            if np.any(child >= n_nodes):
                raise CorruptModelError("Weak learner has out-of-range child indices")
            # Children come after their parent, so every walk reaches a leaf.
            if np.any(child <= internal):
                raise CorruptModelError("Weak learner node links do not form a tree")
        if not np.all(np.isfinite(arrays["value"])):
            raise CorruptModelError("Weak learner has non-finite leaf values")

    @classmethod
    def constant(cls, value: float) -> "WeakLearner":
        """Single-leaf learner predicting ``value`` everywhere."""
        return cls(feature=[LEAF], threshold=[0.0], left=[LEAF], right=[LEAF], value=[value])

    @property
    def n_nodes(self) -> int:
        return len(self.feature)

    @property
    def is_constant(self) -> bool:
        return self.n_nodes == 1

    @property
    def split_feature(self) -> Optional[int]:
        """Root split feature, or None for a constant learner."""
        return None if self.is_constant else int(self.feature[0])

    @property
    def split_threshold(self) -> Optional[float]:
        return None if self.is_constant else float(self.threshold[0])

    @property
    def polarity(self) -> int:
        """
        +1 when samples above the root threshold lean positive, -1 otherwise.

        Computed from the root's immediate children; a constant learner
        reports the sign of its value.
        """
        if self.is_constant:
            return 1 if self.value[0] >= 0 else -1
        left_value = self.value[self.left[0]]
        right_value = self.value[self.right[0]]
        return 1 if right_value >= left_value else -1

    @property
    def depth(self) -> int:
        depths = np.zeros(self.n_nodes, dtype=np.int64)
        for node in range(self.n_nodes):
            if self.feature[node] != LEAF:
                depths[self.left[node]] = depths[node] + 1
                depths[self.right[node]] = depths[node] + 1
        return int(depths.max())

    @property
    def bound(self) -> float:
        """Largest absolute output of this learner."""
        leaves = self.feature == LEAF
        return float(np.max(np.abs(self.value[leaves])))

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Leaf value for each row of ``X``.

        Args:
            X: Features, shape (n_samples, n_features).

        Returns:
            Votes or margins, shape (n_samples,).
        """
        nodes = np.zeros(X.shape[0], dtype=np.int64)
        while True:
            feat = self.feature[nodes]
            rows = np.nonzero(feat != LEAF)[0]
            if rows.size == 0:
                break
            current = nodes[rows]
            go_left = X[rows, feat[rows]] <= self.threshold[current]
            nodes[rows] = np.where(go_left, self.left[current], self.right[current])
        return self.value[nodes]

    def to_dict(self) -> dict:
        return {
            "feature": self.feature.tolist(),
            "threshold": self.threshold.tolist(),
            "left": self.left.tolist(),
            "right": self.right.tolist(),
            "value": self.value.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WeakLearner":
        try:
            return cls(**{key: data[key] for key in ("feature", "threshold", "left", "right", "value")})
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptModelError(f"Malformed weak learner: {exc}") from exc


# ===========================
# Tree growth
# ===========================

def _misclass_split(
    X: np.ndarray,
    y: np.ndarray,
    w: np.ndarray
) -> Optional[Tuple[int, float]]:
    """
    Threshold minimising the children's weighted misclassification.

    scikit-learn trees offer no misclassification criterion, so this scans
    each feature's sorted values with cumulative weight sums. Candidate
    thresholds are midpoints between consecutive distinct values.

    Returns:
        (feature, threshold) of the best split, or None if every feature is
        constant on these samples.
    """
    best = None
    best_score = np.inf
    w_pos = np.where(y > 0, w, 0.0)

    for j in range(X.shape[1]):
        order = np.argsort(X[:, j], kind="mergesort")
        xs = X[order, j]
        valid = np.nonzero(xs[:-1] < xs[1:])[0]
        if valid.size == 0:
            continue

        cw = np.cumsum(w[order])
        cp = np.cumsum(w_pos[order])
        scores = (misclass_impurity(cp[valid], cw[valid])
                  + misclass_impurity(cp[-1] - cp[valid], cw[-1] - cw[valid]))

        k = int(np.argmin(scores))
        if scores[k] < best_score:
            i = valid[k]
            threshold = 0.5 * (xs[i] + xs[i + 1])
            # Midpoint of adjacent floats can round up to the right value.
            if not xs[i] <= threshold < xs[i + 1]:
                threshold = xs[i]
            best, best_score = (j, float(threshold)), scores[k]

    return best


def _grow_misclass(
    X: np.ndarray,
    y: np.ndarray,
    w: np.ndarray,
    max_depth: int
) -> Tuple[List[int], List[float], List[int], List[int]]:
    """Grow node arrays depth-first, children always after their parent."""
    feature: List[int] = []
    threshold: List[float] = []
    left: List[int] = []
    right: List[int] = []

    def grow(rows: np.ndarray, depth: int) -> int:
        node = len(feature)
        feature.append(LEAF)
        threshold.append(0.0)
        left.append(LEAF)
        right.append(LEAF)

        if depth >= max_depth or rows.size < 2:
            return node
        w_rows = w[rows]
        total = float(np.sum(w_rows))
        # Pure nodes gain nothing from splitting.
        if misclass_impurity(np.sum(w_rows[y[rows] > 0]), total) <= 1e-12 * max(total, 1e-300):
            return node
        split = _misclass_split(X[rows], y[rows], w_rows)
        if split is None:
            return node

        j, thr = split
        go_left = X[rows, j] <= thr
        feature[node] = j
        threshold[node] = thr
        left[node] = grow(rows[go_left], depth + 1)
        right[node] = grow(rows[~go_left], depth + 1)
        return node

    grow(np.arange(X.shape[0]), 0)
    return feature, threshold, left, right


def _grow_sklearn(
    X: np.ndarray,
    response: np.ndarray,
    w: np.ndarray,
    criteria: SplitCriteria,
    max_depth: int
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Fit a scikit-learn tree and return its structure as node arrays."""
    if criteria is SplitCriteria.GINI:
        tree = DecisionTreeClassifier(criterion="gini", max_depth=max_depth, random_state=0)
    else:
        tree = DecisionTreeRegressor(criterion="squared_error", max_depth=max_depth, random_state=0)
    tree.fit(X, response, sample_weight=w)

    nodes = tree.tree_
    leaves = nodes.children_left == LEAF
    feature = np.where(leaves, LEAF, nodes.feature)
    threshold = np.where(leaves, 0.0, nodes.threshold)
    return feature, threshold, nodes.children_left, nodes.children_right


def _node_values(
    feature: np.ndarray,
    threshold: np.ndarray,
    left: np.ndarray,
    right: np.ndarray,
    X: np.ndarray,
    y: np.ndarray,
    t: np.ndarray,
    w: np.ndarray,
    leaf_rule: Callable[[np.ndarray, np.ndarray, np.ndarray], float]
) -> np.ndarray:
    """
    Apply the leaf rule to the samples reaching each node.

    Samples are routed with the same ``x <= threshold`` test as
    ``WeakLearner.predict``. A node no sample reaches inherits its parent's
    value.
    """
    value = np.zeros(len(feature))
    stack = [(0, np.arange(X.shape[0]), 0.0)]
    while stack:
        node, rows, parent_value = stack.pop()
        value[node] = leaf_rule(y[rows], t[rows], w[rows]) if rows.size else parent_value
        if feature[node] != LEAF:
            go_left = X[rows, feature[node]] <= threshold[node]
            stack.append((left[node], rows[go_left], value[node]))
            stack.append((right[node], rows[~go_left], value[node]))
    return value


def fit_weak_learner(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    boost_type: BoostType,
    criteria: SplitCriteria,
    max_depth: int = 1,
    target: Optional[np.ndarray] = None,
    active: Optional[np.ndarray] = None
) -> WeakLearner:
    """
    Grow a weighted decision tree for one boosting round.

    Gini and squared-error trees are grown with scikit-learn's
    ``DecisionTreeClassifier`` and ``DecisionTreeRegressor``; misclassification
    trees with a direct threshold scan. Either way the node values are then
    replaced by the variant's leaf rule.

    Args:
        X: Training features, shape (n_samples, n_features).
        y: Encoded labels in {-1, +1}, shape (n_samples,).
        weights: Sample weights, shape (n_samples,).
        boost_type: Variant deciding leaf values.
        criteria: Resolved split criterion (not DEFAULT).
        max_depth: Maximum tree depth, >= 1.
        target: Regression target for SQERR growth and mean leaves.
            Defaults to ``y``.
        active: Boolean mask of samples taking part in the search
            (weight trimming). Defaults to all samples.

    Returns:
        Fitted learner. If no split is possible at the root the learner is a
        constant predictor given by the leaf rule on all active samples.
    """
    if criteria is SplitCriteria.DEFAULT:
        raise ValueError("criteria must be resolved before growing a tree")
    target = y if target is None else target
    idx = np.arange(X.shape[0]) if active is None else np.nonzero(active)[0]
    if idx.size == 0:
        idx = np.arange(X.shape[0])
    X_fit, y_fit, t_fit, w_fit = X[idx], y[idx], target[idx], weights[idx]

    if criteria is SplitCriteria.MISCLASS:
        structure = _grow_misclass(X_fit, y_fit, w_fit, max_depth)
    else:
        response = y_fit if criteria is SplitCriteria.GINI else t_fit
        structure = _grow_sklearn(X_fit, response, w_fit, criteria, max_depth)

    feature, threshold, left, right = (np.asarray(a) for a in structure)
    value = _node_values(feature, threshold, left, right,
                         X_fit, y_fit, t_fit, w_fit, LEAF_RULES[boost_type])
    learner = WeakLearner(feature=feature, threshold=threshold, left=left, right=right, value=value)
    if learner.is_constant:
        logger.debug(f"No valid split on {idx.size} samples; constant learner {value[0]:+.4f}")
    return learner
