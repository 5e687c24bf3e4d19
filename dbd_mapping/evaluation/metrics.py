"""Validation metrics for out-of-fold and holdout predictions.

All functions take ``(predictions, targets)``, drop pairs where either side
is NaN and raise ``ValueError`` on length mismatch or when nothing is left.
"""

import numpy as np
from sklearn.metrics import mean_squared_error


def _clean(predictions: np.ndarray, targets: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    predictions = np.asarray(predictions, dtype="float64")
    targets = np.asarray(targets, dtype="float64")
    if len(predictions) != len(targets):
        raise ValueError("Predictions and targets must have the same length")

    mask = ~(np.isnan(predictions) | np.isnan(targets))
    if np.sum(mask) == 0:
        raise ValueError("No valid data points after removing NaNs")
    return predictions[mask], targets[mask]


def mean_error(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Mean error (bias), mean(prediction - target).

    Examples:
        >>> mean_error(np.array([2.0, 3.0]), np.array([1.0, 2.0]))
        1.0
    """
    pred, obs = _clean(predictions, targets)
    return float(np.mean(pred - obs))


def mse(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Mean squared error."""
    pred, obs = _clean(predictions, targets)
    return float(mean_squared_error(obs, pred))


def rmse(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Root mean squared error (always >= 0)."""
    return float(np.sqrt(mse(predictions, targets)))


def r_squared(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Squared Pearson correlation between predictions and targets.

    This is the R² reported by caret-style resampling and used to rank
    candidate models during feature selection. It is NaN when either side
    is constant or fewer than two pairs remain.

    Examples:
        >>> r_squared(np.array([1.0, 2.0, 3.0]), np.array([2.0, 4.0, 6.0]))
        1.0
    """
    pred, obs = _clean(predictions, targets)
    if len(pred) < 2:
        return float("nan")

    pred_dev = pred - pred.mean()
    obs_dev = obs - obs.mean()
    denominator = np.sqrt(np.sum(pred_dev**2) * np.sum(obs_dev**2))
    if denominator == 0:
        return float("nan")

    r = np.sum(pred_dev * obs_dev) / denominator
    return float(min(r * r, 1.0))


def validation_summary(predictions: np.ndarray, targets: np.ndarray) -> dict[str, float]:
    """ME, MSE, RMSE, R² and the number of valid pairs."""
    pred, obs = _clean(predictions, targets)
    return {
        "ME": mean_error(pred, obs),
        "MSE": mse(pred, obs),
        "RMSE": rmse(pred, obs),
        "R2": r_squared(pred, obs),
        "n": float(len(pred)),
    }
