"""
Serialisation of trained ensembles.

A model blob is a joblib dump of a plain payload dict::

    {"format": "adaboost-ensemble", "version": 1,
     "config": {...}, "ensemble": {...}}

Only lists, numbers and strings are stored, so a blob does not depend on the
classes of this package. joblib unpickles, so load blobs only from trusted
sources.
"""

from pathlib import Path
from typing import Any, Dict, Tuple, Union
import io
import logging
import joblib

from .config import BoostConfig
from .ensemble import Ensemble
from .errors import ConfigurationError, CorruptModelError, IncompatibleModelError

logger = logging.getLogger(__name__)

FORMAT_NAME = "adaboost-ensemble"
FORMAT_VERSION = 1

# Options restored from a blob; the rest of the caller's config is kept.
PREDICTION_OPTIONS = ("boost_type", "split_criteria", "weak_count")


def dumps(ensemble: Ensemble, config: BoostConfig) -> bytes:
    """
    Serialise an ensemble and its configuration to bytes.

    The prediction options are taken from the ensemble, which may have been
    trained before ``config`` last changed.
    """
    trained_config = config.replace(
        boost_type=ensemble.boost_type,
        split_criteria=ensemble.split_criteria,
        weak_count=ensemble.weak_count,
    )
    payload = {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "config": trained_config.to_dict(),
        "ensemble": ensemble.to_dict(),
    }
    buffer = io.BytesIO()
    joblib.dump(payload, buffer)
    return buffer.getvalue()


def loads(blob: bytes) -> Tuple[Ensemble, Dict[str, Any]]:
    """
    Restore an ensemble from bytes produced by ``dumps``.

    Returns:
        ensemble: The restored ensemble.
        options: The prediction-relevant options (boost_type, split_criteria,
            weak_count) as stored.

    Raises:
        CorruptModelError: If the bytes cannot be loaded or the payload is
            malformed.
        IncompatibleModelError: If the blob has another format or a newer
            version.
    """
    if not isinstance(blob, (bytes, bytearray, memoryview)) or len(blob) == 0:
        raise CorruptModelError("Model blob must be non-empty bytes")

    try:
        payload = joblib.load(io.BytesIO(bytes(blob)))
    except Exception as exc:
        # Unpickling garbage can fail with almost any exception type.
        raise CorruptModelError(f"Model blob could not be read: {exc!r}") from exc

    if not isinstance(payload, dict):
        raise CorruptModelError(f"Model payload must be a dict, got {type(payload).__name__}")
    if payload.get("format") != FORMAT_NAME:
        raise IncompatibleModelError(f"Unknown model format {payload.get('format')!r}")
    version = payload.get("version")
    if isinstance(version, bool) or not isinstance(version, int):
        raise CorruptModelError(f"Model version must be an integer, got {version!r}")
    if version > FORMAT_VERSION:
        raise IncompatibleModelError(
            f"Model format version {version} is newer than supported version {FORMAT_VERSION}"
        )

    stored_config = payload.get("config")
    if not isinstance(stored_config, dict):
        raise CorruptModelError("Model payload has no config section")
    try:
        options = {name: stored_config[name] for name in PREDICTION_OPTIONS}
        BoostConfig.from_options(options)
    except KeyError as exc:
        raise CorruptModelError(f"Model config is missing {exc}") from exc
    except ConfigurationError as exc:
        raise CorruptModelError(f"Model config is invalid: {exc}") from exc

    ensemble = Ensemble.from_dict(payload.get("ensemble"))
    if ensemble.weak_count != options["weak_count"]:
        raise CorruptModelError(
            f"Ensemble weak_count {ensemble.weak_count} disagrees with config "
            f"weak_count {options['weak_count']}"
        )
    logger.debug(f"Loaded {len(ensemble)}-learner {ensemble.boost_type.name} ensemble")
    return ensemble, options


def save(ensemble: Ensemble, config: BoostConfig, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_bytes(dumps(ensemble, config))
    logger.debug(f"Saved model to {path}")
    return path


def load(path: Union[str, Path]) -> Tuple[Ensemble, Dict[str, Any]]:
    return loads(Path(path).read_bytes())
