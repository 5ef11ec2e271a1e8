"""
Sample weights for boosting rounds.

Discrete, Real and Gentle AdaBoost reweight multiplicatively,
w_i <- w_i * exp(-α y_i h(x_i)). LogitBoost instead sets w_i = p_i (1 - p_i)
from the running additive score and refits a working response each round
(Friedman, Hastie & Tibshirani 2000, Algorithm 3).
"""

import logging
import numpy as np

from .config import BoostType
from .utils import Z_MAX, sigmoid

logger = logging.getLogger(__name__)


class SampleWeighting:
    """
    Weight vector for one training run.

    Weights start uniform at 1/N and are renormalised to sum to one after
    every update. Only this class mutates them.

    Args:
        y: Encoded labels in {-1, +1}, shape (n_samples,).
        boost_type: Variant selecting the reweighting law.
    """

    def __init__(self, y: np.ndarray, boost_type: BoostType):
        self.y = np.asarray(y, dtype=np.float64)
        self.boost_type = boost_type
        n_samples = self.y.shape[0]

        self.weights = np.full(n_samples, 1.0 / n_samples)
        self.scores = np.zeros(n_samples)  # Additive score F(x_i) so far
        self.active = np.ones(n_samples, dtype=bool)
        self._target = self._working_response() if boost_type is BoostType.LOGIT else self.y

    @property
    def target(self) -> np.ndarray:
        """Regression target for the next learner: labels, or z for LogitBoost."""
        return self._target

    @property
    def n_active(self) -> int:
        return int(np.count_nonzero(self.active))

    def weighted_error(self, outputs: np.ndarray) -> float:
        """
        Total weight of samples whose vote sign disagrees with the label.

        A zero output counts as a positive vote.
        """
        votes = np.where(np.asarray(outputs) >= 0, 1.0, -1.0)
        return float(np.sum(self.weights[votes != self.y]))

    def update(self, outputs: np.ndarray, coefficient: float) -> np.ndarray:
        """
        Apply one round's learner outputs and renormalise.

        Args:
            outputs: Learner votes or margins on every training sample.
            coefficient: The round's ensemble coefficient α.

        Returns:
            The new weights (sum to one).
        """
        outputs = np.asarray(outputs, dtype=np.float64)
        self.scores = self.scores + coefficient * outputs

        if self.boost_type is BoostType.LOGIT:
            self._target = self._working_response()
            p = sigmoid(2.0 * self.scores)
            weights = np.maximum(p * (1.0 - p), 1e-300)
        else:
            # Work in log space: repeated exp(±α) factors overflow otherwise.
            with np.errstate(divide="ignore"):
                log_w = np.log(self.weights) - coefficient * self.y * outputs
            weights = np.exp(log_w - np.max(log_w))

        self.weights = weights / np.sum(weights)
        return self.weights

    def trim(self, trim_rate: float) -> np.ndarray:
        """
        Select the samples for the next weak-learner search.

        Samples are sorted by weight ascending; the lightest ones whose
        cumulative mass stays within (1 - trim_rate) of the total are left
        out. Samples tied with the cut-off weight are kept, so uniform
        weights always keep everything. Left-out samples keep their weight.

        Returns:
            Boolean mask of active samples.
        """
        if trim_rate >= 1.0:
            self.active = np.ones_like(self.active)
            return self.active

        sorted_w = np.sort(self.weights)
        cumulative = np.cumsum(sorted_w)
        limit = (1.0 - trim_rate) * cumulative[-1]
        k = min(int(np.searchsorted(cumulative, limit, side="right")), len(sorted_w) - 1)
        self.active = self.weights >= sorted_w[k]

        if self.n_active < len(self.weights):
            logger.debug(f"Weight trimming kept {self.n_active}/{len(self.weights)} samples")
        return self.active

    def _working_response(self) -> np.ndarray:
        """LogitBoost target z = (y* - p) / (p(1 - p)), clipped to ±Z_MAX."""
        p = sigmoid(2.0 * self.scores)
        y_star = (self.y + 1.0) / 2.0
        z = (y_star - p) / np.maximum(p * (1.0 - p), 1e-300)
        return np.clip(z, -Z_MAX, Z_MAX)
