"""Tests for the quantile regression forest."""

import time

import numpy as np
import pytest

from dbd_mapping.errors import TrainingError
from dbd_mapping.models.qrf.forest import QuantileForest, fit_quantile_forest, predict_quantile


@pytest.fixture
def training_data():
    rng = np.random.default_rng(3)
    X = rng.uniform(0, 10, (60, 3))
    y = 2.0 * X[:, 0] + rng.normal(0, 0.5, 60)
    return X, y


class TestQuantilePrediction:
    """Test quantile retrieval from leaf weights."""

    def test_constant_response(self):
        """Every quantile of a constant response is that constant."""
        rng = np.random.default_rng(0)
        X = rng.uniform(0, 1, (25, 2))
        y = np.full(25, 3.7)

        model = fit_quantile_forest(X, y, mtry=2, n_trees=20)
        predictions = model.predict_quantiles(rng.uniform(0, 1, (10, 2)), [0.05, 0.5, 0.95])

        np.testing.assert_array_equal(predictions, np.full((10, 3), 3.7))

    def test_quantiles_ordered(self, training_data):
        """Lower quantiles never exceed higher ones."""
        X, y = training_data
        model = fit_quantile_forest(X, y, mtry=2, n_trees=30)

        predictions = model.predict_quantiles(X[:20], [0.05, 0.5, 0.95])

        assert predictions.shape == (20, 3)
        assert (predictions[:, 0] <= predictions[:, 1]).all()
        assert (predictions[:, 1] <= predictions[:, 2]).all()

    def test_predictions_are_training_values(self, training_data):
        """Quantiles come from the observed responses."""
        X, y = training_data
        model = fit_quantile_forest(X, y, mtry=1, n_trees=20)

        predictions = model.predict(X[:15])

        assert np.isin(predictions, y).all()

    def test_median_tracks_signal(self, training_data):
        """The median follows the informative predictor."""
        X, y = training_data
        model = fit_quantile_forest(X, y, mtry=3, n_trees=50, node_size=3)

        low = model.predict(np.array([[1.0, 5.0, 5.0]]))[0]
        high = model.predict(np.array([[9.0, 5.0, 5.0]]))[0]

        assert high > low + 5.0

    def test_deterministic(self, training_data):
        X, y = training_data
        first = fit_quantile_forest(X, y, mtry=2, n_trees=20, random_state=5)
        second = fit_quantile_forest(X, y, mtry=2, n_trees=20, random_state=5)

        np.testing.assert_array_equal(first.predict(X), second.predict(X))

    def test_predict_quantile_helper(self, training_data):
        X, y = training_data
        model = fit_quantile_forest(X, y, mtry=2, n_trees=20)

        np.testing.assert_array_equal(predict_quantile(model, X, 0.9), model.predict(X, quantile=0.9))

    def test_empty_query(self, training_data):
        X, y = training_data
        model = fit_quantile_forest(X, y, mtry=2, n_trees=10)

        assert model.predict_quantiles(np.empty((0, 3)), [0.1, 0.9]).shape == (0, 2)


class TestScale:
    """Prediction cost on a domain-sized batch."""

    def test_large_batch(self):
        """1000 training rows, 500 trees and 4096 query pixels finish within seconds."""
        rng = np.random.default_rng(11)
        X = rng.uniform(0, 10, (1000, 3))
        y = X[:, 0] + rng.normal(0, 0.5, 1000)
        model = fit_quantile_forest(X, y, mtry=2, n_trees=500)
        query = rng.uniform(0, 10, (4096, 3))

        start = time.perf_counter()
        predictions = model.predict_quantiles(query, [0.05, 0.5, 0.95])
        elapsed = time.perf_counter() - start

        assert predictions.shape == (4096, 3)
        assert np.isfinite(predictions).all()
        assert elapsed < 10.0


class TestVariableImportance:
    """Test permutation importance."""

    def test_signal_dominates(self, training_data):
        X, y = training_data
        model = fit_quantile_forest(
            X, y, mtry=3, n_trees=30, feature_names=["depth", "noise_a", "noise_b"]
        )

        importance = model.variable_importance(n_repeats=5)

        assert list(importance) == ["depth", "noise_a", "noise_b"]
        assert importance["depth"] > importance["noise_a"]
        assert importance["depth"] > importance["noise_b"]

    def test_cached(self, training_data):
        X, y = training_data
        model = fit_quantile_forest(X, y, mtry=2, n_trees=10)

        assert model.variable_importance() == model.variable_importance()


class TestErrors:
    """Invalid fits and queries."""

    def test_mtry_out_of_range(self, training_data):
        X, y = training_data

        with pytest.raises(TrainingError, match="mtry=4"):
            fit_quantile_forest(X, y, mtry=4)
        with pytest.raises(TrainingError, match="mtry=0"):
            fit_quantile_forest(X, y, mtry=0)

    def test_no_features(self):
        with pytest.raises(TrainingError, match="without features"):
            fit_quantile_forest(np.empty((10, 0)), np.ones(10), mtry=1)

    def test_no_complete_rows(self):
        X = np.full((5, 2), np.nan)

        with pytest.raises(TrainingError, match="No training rows"):
            fit_quantile_forest(X, np.ones(5), mtry=1)

    def test_row_mismatch(self):
        with pytest.raises(TrainingError, match="rows"):
            fit_quantile_forest(np.ones((5, 2)), np.ones(4), mtry=1)

    def test_incomplete_rows_dropped(self, training_data):
        X, y = training_data
        X = X.copy()
        X[0, 1] = np.nan

        model = fit_quantile_forest(X, y, mtry=2, n_trees=10)
        assert len(model.y_train_) == 59

    def test_not_fitted(self):
        with pytest.raises(TrainingError, match="not fitted"):
            QuantileForest().predict(np.ones((1, 2)))

    def test_missing_query_values(self, training_data):
        X, y = training_data
        model = fit_quantile_forest(X, y, mtry=2, n_trees=10)

        with pytest.raises(ValueError, match="missing values"):
            model.predict(np.array([[1.0, np.nan, 2.0]]))

    def test_invalid_quantile(self, training_data):
        X, y = training_data
        model = fit_quantile_forest(X, y, mtry=2, n_trees=10)

        with pytest.raises(ValueError, match=r"\[0, 1\]"):
            model.predict_quantiles(X[:2], [1.5])
