"""Tests for evaluation metrics."""

import numpy as np
import pytest

from dbd_mapping.evaluation.metrics import mean_error, mse, r_squared, rmse, validation_summary


class TestRSquared:
    """Test squared Pearson correlation."""

    def test_perfect_prediction(self):
        predictions = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
        targets = np.array([1.0, 2.0, 3.0, 4.0, 5.0])

        assert abs(r_squared(predictions, targets) - 1.0) < 1e-10

    def test_linear_relation(self):
        """Any exact linear relation gives 1, including a negative slope."""
        targets = np.array([1.0, 2.0, 3.0, 4.0])

        assert abs(r_squared(3.0 * targets + 1.0, targets) - 1.0) < 1e-10
        assert abs(r_squared(-targets, targets) - 1.0) < 1e-10

    def test_constant_prediction(self):
        """Constant predictions have no correlation; the result is NaN."""
        targets = np.array([1.0, 2.0, 3.0])
        assert np.isnan(r_squared(np.full(3, 2.0), targets))

    def test_single_pair(self):
        assert np.isnan(r_squared(np.array([1.0]), np.array([2.0])))

    def test_with_nans(self):
        """NaN pairs are dropped before computing."""
        predictions = np.array([1.0, 2.0, np.nan, 4.0])
        targets = np.array([1.0, 2.0, 3.0, 4.0])

        assert abs(r_squared(predictions, targets) - 1.0) < 1e-10

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError, match="same length"):
            r_squared(np.array([1.0, 2.0, 3.0]), np.array([1.0, 2.0]))

    def test_all_nan(self):
        with pytest.raises(ValueError, match="No valid data points"):
            r_squared(np.array([np.nan, np.nan]), np.array([1.0, 2.0]))


class TestErrors:
    """Test ME, MSE and RMSE."""

    def test_mean_error_sign(self):
        """Overprediction gives a positive mean error."""
        assert mean_error(np.array([2.0, 3.0]), np.array([1.0, 2.0])) == 1.0
        assert mean_error(np.array([0.0, 1.0]), np.array([1.0, 2.0])) == -1.0

    def test_mse_and_rmse(self):
        predictions = np.array([1.0, 2.0])
        targets = np.array([1.0, 4.0])

        assert mse(predictions, targets) == pytest.approx(2.0)
        assert rmse(predictions, targets) == pytest.approx(np.sqrt(2.0))

    def test_perfect_prediction(self):
        values = np.array([0.5, 1.2, 1.4])

        assert rmse(values, values) == 0.0
        assert mean_error(values, values) == 0.0


class TestValidationSummary:
    """Test the combined summary."""

    def test_keys_and_count(self):
        predictions = np.array([1.0, 2.1, np.nan, 3.9])
        targets = np.array([1.0, 2.0, 3.0, 4.0])

        summary = validation_summary(predictions, targets)

        assert set(summary) == {"ME", "MSE", "RMSE", "R2", "n"}
        assert summary["n"] == 3
        assert summary["RMSE"] == pytest.approx(np.sqrt(summary["MSE"]))
        assert 0.0 <= summary["R2"] <= 1.0
