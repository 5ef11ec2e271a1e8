"""
AdaBoost-family boosted decision trees from scratch.

Implements Discrete AdaBoost (Freund & Schapire, 1997) and the Real, Gentle
and LogitBoost variants of "Additive logistic regression: a statistical view
of boosting" by Friedman, Hastie and Tibshirani (2000), with weight trimming
and cross-validated early stopping.
"""

from .config import BoostConfig, BoostType, FeatureType, SplitCriteria
from .data import Template, TrainingSet
from .engine import BoostEngine, EngineState
from .ensemble import Ensemble
from .errors import (
    BoostError, ConfigurationError, InvalidConfigurationError,
    DataError, EmptyTrainingSetError, DimensionMismatchError, LabelDomainError,
    ModelStateError, UntrainedModelError, EmptyEnsembleError,
    PersistenceError, CorruptModelError, IncompatibleModelError,
)
from .transform import ClassificationTransform
from .weak import WeakLearner, fit_weak_learner
from .weighting import SampleWeighting

__version__ = "0.1.0"
__all__ = [
    "BoostConfig", "BoostType", "FeatureType", "SplitCriteria",
    "Template", "TrainingSet",
    "BoostEngine", "EngineState",
    "Ensemble",
    "ClassificationTransform",
    "WeakLearner", "fit_weak_learner",
    "SampleWeighting",
    "BoostError", "ConfigurationError", "InvalidConfigurationError",
    "DataError", "EmptyTrainingSetError", "DimensionMismatchError", "LabelDomainError",
    "ModelStateError", "UntrainedModelError", "EmptyEnsembleError",
    "PersistenceError", "CorruptModelError", "IncompatibleModelError",
]
