"""
Configuration for boosted tree classifiers.

All options are fixed before training begins. ``BoostConfig`` is a frozen
dataclass validated once in ``__post_init__``; changing an option means
building a new config with ``replace``.
"""

from dataclasses import dataclass, asdict, fields, replace as dc_replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .errors import InvalidConfigurationError


class _ParsableEnum(Enum):
    """Enum accepting members, integer codes or case-insensitive names."""

    @classmethod
    def parse(cls, value: Any) -> "_ParsableEnum":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls.__members__[key]
        elif isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        choices = ", ".join(m.name.capitalize() for m in cls)
        raise InvalidConfigurationError(
            f"{cls.__name__} must be one of {{{choices}}}, got {value!r}"
        )


class BoostType(_ParsableEnum):
    """Boosting variant: selects the vote type and the reweighting law."""
    DISCRETE = 0
    REAL = 1
    LOGIT = 2
    GENTLE = 3

    @property
    def is_regression(self) -> bool:
        """Logit and Gentle fit a real-valued target with squared error."""
        return self in (BoostType.LOGIT, BoostType.GENTLE)


class SplitCriteria(_ParsableEnum):
    """Impurity used to score candidate splits during tree growth."""
    DEFAULT = 0
    GINI = 1
    MISCLASS = 3
    SQERR = 4


class FeatureType(_ParsableEnum):
    NUMERICAL = 0
    CATEGORICAL = 1


# camelCase option names, mapped to field names.
_OPTION_ALIASES = {
    "type": "boost_type",
    "boostType": "boost_type",
    "splitCriteria": "split_criteria",
    "weakCount": "weak_count",
    "trimRate": "trim_rate",
    "maxDepth": "max_depth",
    "returnConfidence": "return_confidence",
    "overwriteMat": "overwrite_mat",
    "inputVariable": "input_variable",
    "outputVariable": "output_variable",
    "randomState": "random_state",
}


@dataclass(frozen=True)
class BoostConfig:
    """
    Immutable set of boosting options.

    Attributes:
        boost_type: Boosting variant (Discrete, Real, Logit, Gentle).
        split_criteria: Split scoring for weak-learner growth. ``DEFAULT``
            resolves per boost type (see ``resolve_criteria``).
        weak_count: Maximum ensemble size; also the divisor for confidences.
        trim_rate: Fraction of cumulative weight kept for the weak-learner
            search each round, in (0, 1].
        folds: Cross-validation folds used for early stopping; 0 disables.
        max_depth: Maximum depth of each weak learner.
        return_confidence: Predict the normalised margin instead of a label.
        overwrite_mat: Write the response into the template data instead of
            its metadata.
        input_variable: Metadata key holding the training label.
        output_variable: Metadata key for predictions; empty means
            ``input_variable``.
        random_state: Seed for fold shuffling.
        verbose: Log round progress at INFO level.
    """

    boost_type: BoostType = BoostType.REAL
    split_criteria: SplitCriteria = SplitCriteria.DEFAULT
    weak_count: int = 100
    trim_rate: float = 0.95
    folds: int = 0
    max_depth: int = 1
    return_confidence: bool = True
    overwrite_mat: bool = True
    input_variable: str = "Label"
    output_variable: str = ""
    random_state: Optional[int] = None
    verbose: bool = False

    def __post_init__(self):
        # Normalise enums given as names or codes; frozen, so go through object.
        object.__setattr__(self, "boost_type", BoostType.parse(self.boost_type))
        object.__setattr__(self, "split_criteria", SplitCriteria.parse(self.split_criteria))

        for name in ("weak_count", "folds", "max_depth"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigurationError(f"{name} must be an integer, got {value!r}")
        if self.weak_count <= 0:
            raise InvalidConfigurationError(f"weak_count must be positive, got {self.weak_count}")
        if self.max_depth < 1:
            raise InvalidConfigurationError(f"max_depth must be >= 1, got {self.max_depth}")
        if self.folds < 0:
            raise InvalidConfigurationError(f"folds must be >= 0, got {self.folds}")

        try:
            trim_rate = float(self.trim_rate)
        except (TypeError, ValueError):
            raise InvalidConfigurationError(f"trim_rate must be a number, got {self.trim_rate!r}")
        if not 0.0 < trim_rate <= 1.0:
            raise InvalidConfigurationError(f"trim_rate must lie in (0, 1], got {trim_rate}")
        object.__setattr__(self, "trim_rate", trim_rate)

        for name in ("input_variable", "output_variable"):
            if not isinstance(getattr(self, name), str):
                raise InvalidConfigurationError(f"{name} must be a string")
        if not self.input_variable:
            raise InvalidConfigurationError("input_variable must not be empty")

    @property
    def output_key(self) -> str:
        """Metadata key receiving predictions when not overwriting data."""
        return self.output_variable or self.input_variable

    def resolve_criteria(self) -> SplitCriteria:
        """
        Concrete split criterion for this boost type.

        Discrete defaults to misclassification, Real to Gini. Logit and Gentle
        always fit a regression target, so they use squared error whatever is
        requested.
        """
        if self.boost_type.is_regression:
            return SplitCriteria.SQERR
        if self.split_criteria is SplitCriteria.DEFAULT:
            if self.boost_type is BoostType.DISCRETE:
                return SplitCriteria.MISCLASS
            return SplitCriteria.GINI
        return self.split_criteria

    def replace(self, **changes) -> "BoostConfig":
        """Return a new validated config with ``changes`` applied."""
        return dc_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-type representation used by persistence."""
        data = asdict(self)
        data["boost_type"] = self.boost_type.name
        data["split_criteria"] = self.split_criteria.name
        return data

    @classmethod
    def from_options(
        cls,
        options: Union[Mapping[str, Any], "BoostConfig", None] = None,
        base: Optional["BoostConfig"] = None,
    ) -> "BoostConfig":
        """
        Build a config from an options mapping.

        Accepts field names and the camelCase option names. Options
        not given are taken from ``base`` (or the defaults).
        """
        if isinstance(options, BoostConfig):
            return options
        base = base if base is not None else cls()
        if not options:
            return base

        known = {f.name for f in fields(cls)}
        changes = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                raise InvalidConfigurationError(f"Unknown option {key!r}")
            changes[name] = value
        return base.replace(**changes)
