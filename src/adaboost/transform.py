"""
Public classification transform wrapping the boosting engine.

``ClassificationTransform`` owns a configuration and, once trained or
loaded, an ensemble. Training builds a new ensemble and swaps it in only on
success; prediction reads the current ensemble without mutating anything.
"""

from pathlib import Path
from typing import Any, Mapping, Optional, Union
import logging
import numpy as np

from . import persistence
from .config import BoostConfig
from .data import Template, TrainingSet
from .engine import BoostEngine
from .ensemble import Ensemble
from .errors import DataError, UntrainedModelError
from .utils import as_feature_matrix, as_scalar, encode_labels

logger = logging.getLogger(__name__)


class ClassificationTransform:
    """
    Boosted decision-tree classifier with train / predict / persist operations.

    Parameters
    ----------
    config : BoostConfig, optional
        Starting configuration. Defaults to ``BoostConfig()``.
    **options
        Option overrides, by field name or camelCase name
        (``weakCount=50``).

    Examples
    --------
    >>> transform = ClassificationTransform(boost_type="Discrete", weak_count=5,
    ...                                     return_confidence=False)
    >>> _ = transform.train([[0.1, 0.2], [0.9, 0.8]], labels=[1, -1])
    >>> transform.predict([0.1, 0.2])
    1
    """

    def __init__(self, config: Optional[BoostConfig] = None, **options):
        self._config = BoostConfig.from_options(options, base=config)
        self._ensemble: Optional[Ensemble] = None
        self.engine_: Optional[BoostEngine] = None

        if self._config.verbose:
            logger.setLevel(logging.INFO)

    # ------------------------------------------------------------------
    # Configuration and state
    # ------------------------------------------------------------------

    @property
    def config(self) -> BoostConfig:
        return self._config

    @property
    def ensemble(self) -> Optional[Ensemble]:
        return self._ensemble

    @property
    def is_trained(self) -> bool:
        return self._ensemble is not None

    def configure(self, options: Union[Mapping[str, Any], BoostConfig]) -> "ClassificationTransform":
        """
        Set options for the next training run.

        A mapping updates the current configuration; a ``BoostConfig``
        replaces it. Raises InvalidConfigurationError on bad values, leaving
        the current configuration in place. A trained ensemble keeps the
        settings it was trained with.
        """
        self._config = BoostConfig.from_options(options, base=self._config)
        return self

    def _require_ensemble(self) -> Ensemble:
        if self._ensemble is None:
            raise UntrainedModelError("Transform has not been trained or loaded")
        return self._ensemble

    # ------------------------------------------------------------------
    # Training and prediction
    # ------------------------------------------------------------------

    def train(self, training_set: Any, labels: Any = None) -> Ensemble:
        """
        Fit a new ensemble and make it current.

        Parameters
        ----------
        training_set : TrainingSet, sequence of Template, DataFrame or array-like
            Samples. Templates carry their label in
            ``metadata[config.input_variable]``; a DataFrame without
            ``labels`` reads that column.
        labels : array-like, optional
            One label per sample when ``training_set`` holds bare features.

        Returns
        -------
        ensemble : Ensemble
            The new ensemble. Compare ``len(ensemble)`` with
            ``config.weak_count`` to detect early termination.

        Raises
        ------
        EmptyTrainingSetError, DimensionMismatchError, LabelDomainError
            On malformed input.
        EmptyEnsembleError
            If the first boosting round fails. Any previous ensemble is kept.
        """
        data = TrainingSet.coerce(training_set, labels, self._config.input_variable)
        y, classes = encode_labels(data.labels)

        engine = BoostEngine(self._config)
        ensemble = engine.fit(data.X, y, classes)

        self._ensemble = ensemble
        self.engine_ = engine
        logger.info(
            f"Trained {len(ensemble)}/{self._config.weak_count} "
            f"{self._config.boost_type.name} learners on {len(data)} samples "
            f"({engine.termination.name.lower()})"
        )
        return ensemble

    def _sample_matrix(self, sample: Any) -> np.ndarray:
        data = sample.data if isinstance(sample, Template) else sample
        try:
            data = np.asarray(data)
        except ValueError as exc:
            raise DataError(f"Sample is not a flat feature vector: {exc}") from exc
        return as_feature_matrix(data.reshape(1, -1),
                                 self._require_ensemble().n_features)

    def predict(self, sample: Any) -> Any:
        """
        Response for one sample.

        Returns the normalised confidence F(x) / weak_count as a float when
        ``return_confidence`` is set, otherwise the class label. The sample
        (a Template or array-like) is flattened to one row of features.
        """
        ensemble = self._require_ensemble()
        X = self._sample_matrix(sample)

        if self._config.return_confidence:
            return float(ensemble.predict_confidence(X)[0])
        return as_scalar(ensemble.predict_label(X)[0])

    def predict_batch(self, X: Any) -> np.ndarray:
        """Vectorised ``predict`` over the rows of ``X``."""
        ensemble = self._require_ensemble()
        if self._config.return_confidence:
            return ensemble.predict_confidence(X)
        return ensemble.predict_label(X)

    def project(self, template: Template) -> Template:
        """
        Copy of ``template`` carrying its prediction.

        With ``overwrite_mat`` the copy's data becomes a 1x1 float32 matrix
        holding the response; otherwise the response is stored in
        ``metadata[config.output_key]``. The input template is not modified.
        """
        response = self.predict(template)
        projected = template.copy()
        if self._config.overwrite_mat:
            try:
                value = float(response)
            except (TypeError, ValueError) as exc:
                raise DataError(
                    f"Label {response!r} is not numeric and cannot overwrite the "
                    "template data; set overwrite_mat=False"
                ) from exc
            projected.data = np.full((1, 1), value, dtype=np.float32)
        else:
            projected.metadata[self._config.output_key] = response
        return projected

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def serialize(self) -> bytes:
        """Trained ensemble and configuration as an opaque versioned blob."""
        return persistence.dumps(self._require_ensemble(), self._config)

    def deserialize(self, blob: bytes) -> "ClassificationTransform":
        """
        Replace the current ensemble with one restored from ``blob``.

        The stored boost_type, split_criteria and weak_count replace the
        current ones; other options are kept. On failure nothing changes.
        """
        ensemble, options = persistence.loads(blob)
        self._config = self._config.replace(**options)
        self._ensemble = ensemble
        return self

    def save(self, path: Union[str, Path]) -> Path:
        return persistence.save(self._require_ensemble(), self._config, path)

    def load(self, path: Union[str, Path]) -> "ClassificationTransform":
        return self.deserialize(Path(path).read_bytes())
