"""
Inputs to the classification transform: templates and training sets.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence
import numpy as np
import pandas as pd

from .errors import DataError, DimensionMismatchError, EmptyTrainingSetError
from .utils import as_feature_matrix


@dataclass
class Template:
    """
    A sample as it flows through a transform.

    Attributes:
        data: Primary feature representation. Any shape; it is flattened to
            one row of features when used.
        metadata: Named side-channel values, e.g. the training label.
    """

    data: np.ndarray
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.data = np.asarray(self.data)

    def copy(self) -> "Template":
        return Template(data=self.data.copy(), metadata=dict(self.metadata))


def _stack_rows(rows: Sequence[Any]) -> np.ndarray:
    """Flatten each row and stack them, rejecting inconsistent lengths."""
    try:
        flat = [np.asarray(row, dtype=np.float64).ravel() for row in rows]
    except (TypeError, ValueError) as exc:
        raise DataError(f"Features must be numeric: {exc}") from exc
    n_features = flat[0].shape[0]
    for i, row in enumerate(flat):
        if row.shape[0] != n_features:
            raise DimensionMismatchError(
                f"Sample {i} has {row.shape[0]} features, expected {n_features}"
            )
    return np.vstack(flat)


class TrainingSet:
    """
    Validated feature matrix and label vector for one training call.

    Args:
        X: Features, shape (n_samples, n_features), or a sequence of rows.
        labels: One label per sample.
    """

    def __init__(self, X: Any, labels: Any):
        if X is None or len(X) == 0:
            raise EmptyTrainingSetError("Training set is empty")
        if isinstance(X, np.ndarray) and X.ndim == 2:
            self.X = as_feature_matrix(X)
        else:
            self.X = as_feature_matrix(_stack_rows(X))
        if self.X.shape[1] == 0:
            raise DimensionMismatchError("Samples have no features")

        self.labels = np.asarray(labels).ravel()
        if self.labels.shape[0] != self.X.shape[0]:
            raise DimensionMismatchError(
                f"{self.X.shape[0]} samples but {self.labels.shape[0]} labels"
            )

    def __len__(self) -> int:
        return self.X.shape[0]

    @property
    def n_features(self) -> int:
        return self.X.shape[1]

    @classmethod
    def from_templates(cls, templates: Sequence[Template], input_variable: str) -> "TrainingSet":
        """Read features from each template's data and labels from its metadata."""
        templates = list(templates)
        if not templates:
            raise EmptyTrainingSetError("Training set is empty")
        labels = []
        for i, template in enumerate(templates):
            if input_variable not in template.metadata:
                raise DataError(f"Template {i} has no {input_variable!r} label")
            labels.append(template.metadata[input_variable])
        return cls([t.data for t in templates], labels)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        label_column: str,
        feature_columns: Optional[Sequence[str]] = None
    ) -> "TrainingSet":
        """
        Build a training set from a DataFrame.

        Args:
            frame: One row per sample.
            label_column: Column holding the labels.
            feature_columns: Columns to use as features; defaults to every
                other column, in frame order.
        """
        if label_column not in frame.columns:
            raise DataError(f"Label column {label_column!r} not in frame")
        if feature_columns is None:
            feature_columns = [c for c in frame.columns if c != label_column]
        missing = [c for c in feature_columns if c not in frame.columns]
        if missing:
            raise DataError(f"Feature columns not in frame: {missing}")
        if len(frame) == 0:
            raise EmptyTrainingSetError("Training set is empty")
        return cls(frame[list(feature_columns)].to_numpy(dtype=np.float64),
                   frame[label_column].to_numpy())

    @classmethod
    def coerce(cls, data: Any, labels: Any = None, input_variable: str = "Label") -> "TrainingSet":
        """
        Accept a TrainingSet, templates, or features with separate labels.

        Without ``labels``, ``data`` must be a sequence of templates or a
        DataFrame holding an ``input_variable`` column.
        """
        if isinstance(data, TrainingSet):
            return data
        if isinstance(data, pd.DataFrame):
            if labels is None:
                return cls.from_frame(data, input_variable)
            return cls(data.to_numpy(dtype=np.float64), labels)
        if labels is None:
            if data is None or len(data) == 0:
                raise EmptyTrainingSetError("Training set is empty")
            if not all(isinstance(t, Template) for t in data):
                raise DataError("Labels are required unless training on templates")
            return cls.from_templates(data, input_variable)
        return cls(data, labels)
