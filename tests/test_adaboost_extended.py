"""
Extended tests for the boosting engine, ensemble and classification transform.

Coverage:
- Engine state transitions: convergence, maximum rounds, early stop, empty ensemble
- Training error bound for Discrete AdaBoost
- Every boosting variant on separable data
- Confidence normalisation across ensemble sizes
- Cross-validated early stopping
- Configuration validation
- Transform train / predict / project contracts and error taxonomy
- Serialise / deserialise round trip and corrupt blobs
"""

import io
import sys
from pathlib import Path

import joblib
import numpy as np
import pandas as pd
import pytest
from sklearn.datasets import make_classification

# ---------- path setup ----------
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import adaboost.engine as engine_module
from adaboost import (
    BoostConfig, BoostEngine, BoostType, ClassificationTransform, EngineState,
    Ensemble, FeatureType, SplitCriteria, Template, TrainingSet, WeakLearner,
)
from adaboost.errors import (
    CorruptModelError, DataError, DimensionMismatchError, EmptyEnsembleError,
    EmptyTrainingSetError, IncompatibleModelError, InvalidConfigurationError,
    LabelDomainError, UntrainedModelError,
)
from adaboost.utils import ERROR_EPS

# Largest per-learner output: the coefficient of a perfect Discrete learner,
# equal to the clipped Real leaf margin.
MARGIN_BOUND = 0.5 * np.log((1.0 - ERROR_EPS) / ERROR_EPS)

XOR_X = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
XOR_Y = np.array([-1, 1, 1, -1])


def noisy_data(n_samples=200, random_state=0):
    return make_classification(
        n_samples=n_samples, n_features=6, n_informative=4, flip_y=0.1,
        random_state=random_state
    )


def separable_data(n_samples=100, random_state=0):
    rng = np.random.default_rng(random_state)
    X = rng.uniform(size=(n_samples, 2))
    y = np.where(X[:, 0] > 0.5, 1, -1)
    return X, y


# =============================================================================
# Scenarios and boundaries
# =============================================================================


class TestScenarios:
    """Small hand-checked training sets."""

    def test_two_point_discrete_scenario(self):
        transform = ClassificationTransform(
            boost_type="Discrete", weak_count=5, return_confidence=False
        )
        ensemble = transform.train([[0.1, 0.2], [0.9, 0.8]], labels=[1, -1])

        assert transform.predict([0.1, 0.2]) == 1
        assert transform.predict([0.9, 0.8]) == -1
        assert len(ensemble) == 1
        assert transform.engine_.termination is EngineState.CONVERGED

    def test_single_sample_gives_constant_learner(self):
        transform = ClassificationTransform(return_confidence=False)
        ensemble = transform.train([[0.3, 0.7]], labels=[-1])

        # Real leaves carry a clipped half log-odds margin whose sign is the label.
        first = ensemble.learners[0]
        assert first.is_constant
        assert np.sign(first.value[0]) == -1
        assert abs(first.value[0]) == pytest.approx(MARGIN_BOUND)
        assert transform.predict([0.3, 0.7]) == -1

    def test_single_sample_discrete_vote_equals_label(self):
        transform = ClassificationTransform(boost_type="Discrete", return_confidence=False)
        ensemble = transform.train([[0.3, 0.7]], labels=[5])

        assert ensemble.learners[0].is_constant
        assert ensemble.learners[0].value[0] == 1.0
        assert transform.predict([0.3, 0.7]) == 5

    def test_predict_before_training_fails(self):
        transform = ClassificationTransform()
        with pytest.raises(UntrainedModelError):
            transform.predict([0.1, 0.2])
        with pytest.raises(UntrainedModelError):
            transform.serialize()


# =============================================================================
# Engine state machine
# =============================================================================


class TestEngine:

    def test_max_rounds_reached_on_noisy_data(self):
        X, y = noisy_data()
        engine = BoostEngine(BoostConfig(boost_type=BoostType.DISCRETE, weak_count=5))
        ensemble = engine.fit(X, 2.0 * y - 1.0)

        assert len(ensemble) == 5
        assert ensemble.complete
        assert engine.state is EngineState.DONE
        assert engine.termination is EngineState.MAX_ROUNDS_REACHED
        assert len(engine.errors_) == len(engine.coefficients_) == len(engine.train_scores_) == 5

    def test_round_errors_below_half_and_coefficients_positive(self):
        X, y = noisy_data()
        engine = BoostEngine(BoostConfig(boost_type=BoostType.DISCRETE, weak_count=20))
        engine.fit(X, 2.0 * y - 1.0)

        assert all(0.0 <= e < 0.5 for e in engine.errors_)
        assert all(a > 0.0 for a in engine.coefficients_)

    def test_discrete_training_error_bound(self):
        """Training error <= Π 2 sqrt(ε_m (1 - ε_m)) (Freund & Schapire 1997)."""
        X, y = noisy_data(random_state=4)
        engine = BoostEngine(BoostConfig(boost_type="Discrete", weak_count=30, trim_rate=1.0))
        engine.fit(X, 2.0 * y - 1.0)

        errors = np.array(engine.errors_)
        bound = np.prod(2.0 * np.sqrt(errors * (1.0 - errors)))
        assert engine.train_scores_[-1] <= bound + 1e-12

    def test_first_round_at_chance_raises_empty_ensemble(self):
        """Stumps cannot beat chance on XOR."""
        engine = BoostEngine(BoostConfig(boost_type=BoostType.DISCRETE, weak_count=10))
        with pytest.raises(EmptyEnsembleError):
            engine.fit(XOR_X, XOR_Y.astype(float))

    def test_deeper_learners_solve_xor(self):
        engine = BoostEngine(BoostConfig(boost_type=BoostType.DISCRETE, max_depth=2))
        ensemble = engine.fit(XOR_X, XOR_Y.astype(float))

        assert engine.termination is EngineState.CONVERGED
        np.testing.assert_array_equal(np.sign(ensemble.decision_function(XOR_X)), XOR_Y)

    def test_failed_round_keeps_partial_ensemble(self, monkeypatch):
        """A later round at or above chance ends training with what exists."""
        X = np.array([[0.0], [1.0], [2.0], [3.0]])
        y = np.array([1.0, 1.0, 1.0, -1.0])
        learners = iter([
            WeakLearner.constant(1.0),  # error 0.25
            WeakLearner(feature=[0, -1, -1], threshold=[2.5, 0.0, 0.0],
                        left=[1, -1, -1], right=[2, -1, -1],
                        value=[0.0, -1.0, 1.0]),  # wrong everywhere
        ])
        monkeypatch.setattr(engine_module, "fit_weak_learner", lambda *a, **k: next(learners))

        engine = BoostEngine(BoostConfig(boost_type=BoostType.DISCRETE, weak_count=10))
        ensemble = engine.fit(X, y)

        assert len(ensemble) == 1
        assert not ensemble.complete
        assert engine.termination is EngineState.STOPPED
        assert engine.errors_ == [pytest.approx(0.25)]

    @pytest.mark.parametrize("boost_type", list(BoostType))
    def test_every_variant_separates_separable_data(self, boost_type):
        X, y = separable_data()
        engine = BoostEngine(BoostConfig(boost_type=boost_type, weak_count=20))
        ensemble = engine.fit(X, y.astype(float), classes=(-1, 1))

        np.testing.assert_array_equal(ensemble.predict_label(X), y)
        assert engine.termination is EngineState.CONVERGED

    @pytest.mark.parametrize("boost_type", list(BoostType))
    def test_every_variant_learns_noisy_data(self, boost_type):
        X, y = make_classification(
            n_samples=300, n_features=5, n_informative=3, n_clusters_per_class=1,
            flip_y=0.05, random_state=1
        )
        transform = ClassificationTransform(boost_type=boost_type, weak_count=50,
                                            return_confidence=False)
        transform.train(X, y)
        accuracy = np.mean(transform.predict_batch(X) == y)
        assert accuracy >= 0.8

    def test_regression_variants_fall_back_to_sqerr(self):
        X, y = separable_data()
        engine = BoostEngine(BoostConfig(boost_type="Gentle", split_criteria="Gini", weak_count=5))
        ensemble = engine.fit(X, y.astype(float))
        assert ensemble.split_criteria is SplitCriteria.SQERR

    def test_default_criteria_resolution(self):
        assert BoostConfig(boost_type="Discrete").resolve_criteria() is SplitCriteria.MISCLASS
        assert BoostConfig(boost_type="Real").resolve_criteria() is SplitCriteria.GINI
        assert BoostConfig(boost_type="Logit").resolve_criteria() is SplitCriteria.SQERR
        assert BoostConfig(boost_type="Real", split_criteria="Sqerr").resolve_criteria() \
            is SplitCriteria.SQERR

    def test_trimming_reduces_active_samples(self):
        X, y = noisy_data()
        engine = BoostEngine(BoostConfig(boost_type="Discrete", weak_count=10, trim_rate=0.5))
        engine.fit(X, 2.0 * y - 1.0)
        assert min(engine.n_active_) < len(y)

    def test_ensemble_records_feature_types(self):
        X, y = separable_data()
        ensemble = BoostEngine(BoostConfig(weak_count=3)).fit(X, y.astype(float))
        assert ensemble.feature_types == (
            FeatureType.NUMERICAL, FeatureType.NUMERICAL, FeatureType.CATEGORICAL
        )


# =============================================================================
# Cross-validated early stopping
# =============================================================================


class TestCrossValidation:

    def test_cv_caps_rounds_at_best_held_out_error(self):
        X, y = noisy_data(n_samples=150, random_state=2)
        engine = BoostEngine(BoostConfig(boost_type="Discrete", weak_count=30, folds=3,
                                         random_state=0))
        ensemble = engine.fit(X, 2.0 * y - 1.0)

        assert len(engine.cv_scores_) == 30
        best = int(np.argmin(engine.cv_scores_)) + 1
        assert len(ensemble) <= best
        if len(ensemble) < 30:
            assert engine.termination in (EngineState.CONVERGED, EngineState.STOPPED)

    def test_cv_is_reproducible_with_random_state(self):
        X, y = noisy_data(n_samples=120, random_state=5)
        config = BoostConfig(weak_count=15, folds=4, random_state=7)
        first = BoostEngine(config)
        second = BoostEngine(config)
        first.fit(X, 2.0 * y - 1.0)
        second.fit(X, 2.0 * y - 1.0)
        assert first.cv_scores_ == second.cv_scores_

    def test_single_fold_disables_cv(self):
        X, y = noisy_data(n_samples=60)
        engine = BoostEngine(BoostConfig(weak_count=5, folds=1))
        engine.fit(X, 2.0 * y - 1.0)
        assert engine.cv_scores_ == []

    def test_folds_clamped_to_sample_count(self):
        X = np.array([[0.0], [1.0], [2.0], [3.0]])
        y = np.array([-1.0, -1.0, 1.0, 1.0])
        engine = BoostEngine(BoostConfig(weak_count=3, folds=10, random_state=0))
        ensemble = engine.fit(X, y)
        assert len(ensemble) >= 1


# =============================================================================
# Ensemble prediction
# =============================================================================


class TestEnsemblePrediction:

    def test_confidence_range_independent_of_weak_count(self):
        X, y = noisy_data(random_state=6)
        confidences = {}
        for weak_count in (10, 100):
            transform = ClassificationTransform(boost_type="Discrete", weak_count=weak_count)
            ensemble = transform.train(X, y)
            confidences[weak_count] = ensemble.predict_confidence(X)
            assert ensemble.bound <= MARGIN_BOUND + 1e-9

        for values in confidences.values():
            assert np.all(np.abs(values) <= MARGIN_BOUND + 1e-9)

    def test_confidence_divides_by_configured_weak_count(self):
        transform = ClassificationTransform(boost_type="Discrete", weak_count=5)
        ensemble = transform.train([[0.1, 0.2], [0.9, 0.8]], labels=[1, -1])

        assert len(ensemble) == 1
        raw = ensemble.decision_function([0.1, 0.2])[0]
        assert transform.predict([0.1, 0.2]) == pytest.approx(raw / 5)
        assert transform.predict([0.1, 0.2]) > 0
        assert transform.predict([0.9, 0.8]) < 0

    def test_staged_scores_end_at_decision_function(self):
        X, y = noisy_data()
        ensemble = ClassificationTransform(weak_count=15).train(X, y)
        staged = list(ensemble.staged_decision_function(X))

        assert len(staged) == len(ensemble)
        np.testing.assert_allclose(staged[-1], ensemble.decision_function(X))

    def test_predict_proba_in_unit_interval(self):
        X, y = noisy_data()
        ensemble = ClassificationTransform(boost_type="Logit", weak_count=20).train(X, y)
        proba = ensemble.predict_proba(X)
        assert np.all((proba >= 0.0) & (proba <= 1.0))
        np.testing.assert_array_equal(proba >= 0.5, ensemble.predict_label(X) == 1)

    def test_ensemble_is_immutable(self):
        X, y = separable_data()
        ensemble = ClassificationTransform(weak_count=3).train(X, y)
        with pytest.raises(AttributeError):
            ensemble.weak_count = 10

    def test_dimension_mismatch_on_predict(self):
        transform = ClassificationTransform()
        transform.train([[0.1, 0.2], [0.9, 0.8]], labels=[1, -1])
        with pytest.raises(DimensionMismatchError):
            transform.predict([0.1, 0.2, 0.3])


# =============================================================================
# Configuration
# =============================================================================


class TestConfiguration:

    @pytest.mark.parametrize("options", [
        {"weak_count": 0},
        {"weak_count": -3},
        {"trim_rate": 0.0},
        {"trim_rate": 1.5},
        {"max_depth": 0},
        {"folds": -1},
        {"boost_type": "Adaptive"},
        {"split_criteria": "entropy"},
        {"no_such_option": 1},
    ])
    def test_invalid_options_rejected(self, options):
        with pytest.raises(InvalidConfigurationError):
            ClassificationTransform().configure(options)

    def test_failed_configure_keeps_previous_config(self):
        transform = ClassificationTransform(weak_count=7)
        with pytest.raises(InvalidConfigurationError):
            transform.configure({"weak_count": 0})
        assert transform.config.weak_count == 7

    def test_camel_case_and_enum_names(self):
        transform = ClassificationTransform().configure({
            "boostType": "gentle", "splitCriteria": "SQERR", "weakCount": 12,
            "trimRate": 1, "maxDepth": 2, "returnConfidence": False,
        })
        config = transform.config
        assert config.boost_type is BoostType.GENTLE
        assert config.split_criteria is SplitCriteria.SQERR
        assert config.weak_count == 12
        assert config.trim_rate == 1.0
        assert config.max_depth == 2
        assert config.return_confidence is False

    def test_defaults(self):
        config = BoostConfig()
        assert config.boost_type is BoostType.REAL
        assert config.split_criteria is SplitCriteria.DEFAULT
        assert config.weak_count == 100
        assert config.trim_rate == pytest.approx(0.95)
        assert config.folds == 0
        assert config.max_depth == 1
        assert config.return_confidence and config.overwrite_mat
        assert config.input_variable == "Label"
        assert config.output_key == "Label"

    def test_config_is_frozen(self):
        config = BoostConfig()
        with pytest.raises(AttributeError):
            config.weak_count = 5


# =============================================================================
# Transform inputs and outputs
# =============================================================================


class TestTransform:

    def test_empty_training_set(self):
        transform = ClassificationTransform()
        with pytest.raises(EmptyTrainingSetError):
            transform.train([])
        with pytest.raises(EmptyTrainingSetError):
            transform.train(np.empty((0, 3)), labels=[])

    def test_inconsistent_dimensions(self):
        with pytest.raises(DimensionMismatchError):
            ClassificationTransform().train([[0.1, 0.2], [0.3]], labels=[1, -1])

    def test_label_count_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            ClassificationTransform().train([[0.1, 0.2], [0.3, 0.4]], labels=[1])

    def test_more_than_two_classes(self):
        with pytest.raises(LabelDomainError):
            ClassificationTransform().train([[0.0], [1.0], [2.0]], labels=[0, 1, 2])

    def test_non_finite_features(self):
        with pytest.raises(DataError):
            ClassificationTransform().train([[0.0], [np.nan]], labels=[0, 1])

    def test_train_on_templates(self):
        templates = [
            Template(np.array([[0.1, 0.2]]), {"Label": 1.0}),
            Template(np.array([[0.9, 0.8]]), {"Label": -1.0}),
        ]
        transform = ClassificationTransform(return_confidence=False)
        transform.train(templates)
        assert transform.predict(templates[0]) == 1.0
        assert transform.predict(templates[1]) == -1.0

    def test_template_without_label(self):
        with pytest.raises(DataError):
            ClassificationTransform().train([Template(np.array([0.1, 0.2]))])

    def test_train_on_data_frame(self):
        X, y = separable_data()
        frame = pd.DataFrame(X, columns=["a", "b"])
        frame["target"] = y
        data = TrainingSet.from_frame(frame, "target")

        transform = ClassificationTransform(return_confidence=False)
        transform.train(data)
        np.testing.assert_array_equal(transform.predict_batch(X), y)

    def test_project_overwrites_data(self):
        transform = ClassificationTransform(boost_type="Discrete", weak_count=5)
        transform.train([[0.1, 0.2], [0.9, 0.8]], labels=[1, -1])
        source = Template(np.array([0.1, 0.2]), {"Label": 1})

        projected = transform.project(source)

        assert projected.data.shape == (1, 1)
        assert projected.data.dtype == np.float32
        assert projected.data[0, 0] == pytest.approx(transform.predict(source), rel=1e-6)
        np.testing.assert_array_equal(source.data, [0.1, 0.2])

    def test_project_writes_output_variable(self):
        transform = ClassificationTransform(
            boost_type="Discrete", weak_count=5, overwrite_mat=False,
            return_confidence=False, output_variable="Predicted"
        )
        transform.train([[0.1, 0.2], [0.9, 0.8]], labels=[1, -1])
        source = Template(np.array([0.9, 0.8]), {"Label": -1})

        projected = transform.project(source)

        assert projected.metadata["Predicted"] == -1
        assert projected.metadata["Label"] == -1
        assert "Predicted" not in source.metadata
        np.testing.assert_array_equal(projected.data, source.data)

    def test_failed_training_keeps_previous_ensemble(self):
        transform = ClassificationTransform(boost_type="Discrete")
        previous = transform.train([[0.1, 0.2], [0.9, 0.8]], labels=[1, -1])

        with pytest.raises(EmptyEnsembleError):
            transform.train(XOR_X, XOR_Y)
        assert transform.ensemble is previous


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:

    @pytest.mark.parametrize("boost_type", list(BoostType))
    def test_round_trip_predictions_match(self, boost_type):
        X, y = noisy_data()
        X_train, X_test, y_train = X[:150], X[150:], y[:150]
        original = ClassificationTransform(boost_type=boost_type, weak_count=25)
        original.train(X_train, y_train)

        restored = ClassificationTransform().deserialize(original.serialize())

        np.testing.assert_array_equal(restored.predict_batch(X_test), original.predict_batch(X_test))
        assert restored.config.boost_type is boost_type
        assert restored.config.weak_count == 25
        for row in X_test[:5]:
            assert restored.predict(row) == original.predict(row)

    def test_save_and_load(self, tmp_path):
        X, y = separable_data()
        original = ClassificationTransform(weak_count=10)
        original.train(X, y)
        path = original.save(tmp_path / "model.joblib")

        restored = ClassificationTransform().load(path)
        np.testing.assert_array_equal(restored.predict_batch(X), original.predict_batch(X))

    def test_deserialize_replaces_existing_ensemble(self):
        X, y = separable_data()
        first = ClassificationTransform(weak_count=4)
        first.train(X, y)
        second = ClassificationTransform(weak_count=4)
        second.train(X, -y)

        second.deserialize(first.serialize())
        np.testing.assert_array_equal(second.predict_batch(X), first.predict_batch(X))

    def test_serialize_after_reconfigure_keeps_trained_options(self):
        """Options changed for the next run do not leak into the saved model."""
        transform = ClassificationTransform(boost_type="Discrete", weak_count=5)
        transform.train([[0.1, 0.2], [0.9, 0.8]], labels=[1, -1])
        transform.configure({"weak_count": 20, "boost_type": "Gentle"})

        restored = ClassificationTransform().deserialize(transform.serialize())

        assert restored.config.weak_count == 5
        assert restored.config.boost_type is BoostType.DISCRETE
        assert restored.predict([0.1, 0.2]) == transform.predict([0.1, 0.2])
        assert restored.predict([0.9, 0.8]) == transform.predict([0.9, 0.8])

    @pytest.mark.parametrize("blob", [b"", b"not a model", b"\x00\x01\x02\x03" * 8])
    def test_garbage_is_corrupt(self, blob):
        with pytest.raises(CorruptModelError):
            ClassificationTransform().deserialize(blob)

    def _dump(self, payload):
        buffer = io.BytesIO()
        joblib.dump(payload, buffer)
        return buffer.getvalue()

    def test_wrong_format_is_incompatible(self):
        blob = self._dump({"format": "something-else", "version": 1})
        with pytest.raises(IncompatibleModelError):
            ClassificationTransform().deserialize(blob)

    def test_newer_version_is_incompatible(self):
        transform = ClassificationTransform(weak_count=3)
        transform.train(*separable_data())
        payload = joblib.load(io.BytesIO(transform.serialize()))
        payload["version"] = 99
        with pytest.raises(IncompatibleModelError):
            ClassificationTransform().deserialize(self._dump(payload))

    def test_tampered_ensemble_is_corrupt(self):
        transform = ClassificationTransform(weak_count=3)
        transform.train(*separable_data())
        payload = joblib.load(io.BytesIO(transform.serialize()))
        payload["ensemble"]["learners"] = []

        target = ClassificationTransform()
        with pytest.raises(CorruptModelError):
            target.deserialize(self._dump(payload))
        assert not target.is_trained

    def test_ensemble_dict_rejects_out_of_range_feature(self):
        X, y = separable_data()
        data = ClassificationTransform(weak_count=3).train(X, y).to_dict()
        data["n_features"] = 1
        data["learners"][0]["feature"][0] = 1
        with pytest.raises(CorruptModelError):
            Ensemble.from_dict(data)

    def test_cyclic_learner_is_corrupt(self):
        transform = ClassificationTransform(weak_count=3)
        transform.train(*separable_data())
        payload = joblib.load(io.BytesIO(transform.serialize()))
        payload["ensemble"]["learners"][0] = {
            "feature": [0, 0, -1], "threshold": [0.5, 0.5, 0.0],
            "left": [1, 1, -1], "right": [2, 2, -1], "value": [0.0, 0.0, 1.0],
        }

        target = ClassificationTransform()
        with pytest.raises(CorruptModelError):
            target.deserialize(self._dump(payload))
        assert not target.is_trained


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
