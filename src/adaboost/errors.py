"""
Exception hierarchy for the boosting library.

Configuration and data errors also derive from ``ValueError`` and model
state errors from ``RuntimeError`` so callers catching the built-in types
keep working.
"""


class BoostError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(BoostError, ValueError):
    """Bad option values, rejected when the configuration is built."""


class InvalidConfigurationError(ConfigurationError):
    pass


class DataError(BoostError, ValueError):
    """Malformed training or prediction input."""


class EmptyTrainingSetError(DataError):
    pass


class DimensionMismatchError(DataError):
    pass


class LabelDomainError(DataError):
    """Labels fall outside the two-class domain supported by boosting."""


class ModelStateError(BoostError, RuntimeError):
    """Operation not valid in the current model state."""


class UntrainedModelError(ModelStateError):
    pass


class EmptyEnsembleError(ModelStateError):
    """The first boosting round produced no usable weak learner."""


class PersistenceError(BoostError):
    """Serialized model cannot be restored."""


class CorruptModelError(PersistenceError):
    pass


class IncompatibleModelError(PersistenceError):
    """Blob was written by an unknown format or a newer format version."""
