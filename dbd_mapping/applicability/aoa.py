"""Dissimilarity index (DI) and area of applicability (AOA).

Predictors are centred and scaled with training statistics and multiplied
by the model's variable importance, so influential predictors dominate the
feature-space distance. For each training observation the distance to its
nearest other training observation is recorded; their mean ``d̄`` is the
normaliser. A location's DI is its distance to the nearest training
observation divided by ``d̄``. Locations whose DI exceeds

    median(training DI) + t * MAD(training DI)

are outside the AOA, i.e. the model extrapolates there.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy.spatial import cKDTree
from scipy.stats import median_abs_deviation

from dbd_mapping.errors import EmptyTrainingSetError
from dbd_mapping.readers.raster_stack import PredictorStack
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("aoa")


@dataclass(frozen=True)
class TrainingDissimilarity:
    """Training reference for DI scoring (trainDI)."""

    feature_names: tuple[str, ...]
    means: np.ndarray = field(repr=False)
    scales: np.ndarray = field(repr=False)
    weights: np.ndarray
    train_scaled: np.ndarray = field(repr=False)
    train_distances: np.ndarray = field(repr=False)
    mean_distance: float
    train_di: np.ndarray = field(repr=False)
    threshold: float
    threshold_multiplier: float

    def transform(self, X: np.ndarray) -> np.ndarray:  # noqa: N803
        """Scale and weight raw predictor rows like the training data."""
        X = np.asarray(X, dtype="float64")  # noqa: N806
        return (X - self.means) / self.scales * self.weights


def _normalise_weights(
    feature_names: Sequence[str], feature_weights: Mapping[str, float] | Sequence[float] | None
) -> np.ndarray:
    if feature_weights is None:
        weights = np.ones(len(feature_names))
    elif isinstance(feature_weights, Mapping):
        weights = np.array([float(feature_weights.get(f, 0.0)) for f in feature_names])
    else:
        weights = np.asarray(feature_weights, dtype="float64")
        if len(weights) != len(feature_names):
            raise ValueError(f"{len(weights)} weights for {len(feature_names)} features")

    weights = np.where(np.isfinite(weights) & (weights > 0), weights, 0.0)
    if weights.max(initial=0.0) == 0:
        logger.warning("All feature weights are zero; using equal weights")
        return np.ones(len(feature_names))
    return weights / weights.max()


def _nearest_other(scaled: np.ndarray, fold_ids: np.ndarray | None) -> np.ndarray:
    """Nearest neighbour distance excluding itself (or its whole CV fold)."""
    if fold_ids is None:
        return cKDTree(scaled).query(scaled, k=2)[0][:, 1]

    distances = np.full(len(scaled), np.inf)
    for fold in np.unique(fold_ids):
        in_fold = fold_ids == fold
        if in_fold.all():
            return cKDTree(scaled).query(scaled, k=2)[0][:, 1]
        distances[in_fold] = cKDTree(scaled[~in_fold]).query(scaled[in_fold], k=1)[0]
    return distances


def _to_di(distances: np.ndarray, mean_distance: float) -> np.ndarray:
    if mean_distance > 0:
        return distances / mean_distance
    # identical training rows: anything away from them is infinitely dissimilar
    return np.where(distances == 0, 0.0, np.inf)


def fit_training_dissimilarity(
    train_features: pd.DataFrame | np.ndarray,
    feature_weights: Mapping[str, float] | Sequence[float] | None = None,
    feature_names: Sequence[str] | None = None,
    fold_ids: np.ndarray | None = None,
    threshold_multiplier: float = 3.0,
) -> TrainingDissimilarity:
    """Compute trainDI from the training predictors.

    Args:
        train_features: Training rows of the selected predictors
        feature_weights: Importance per feature (mapping or sequence); None = equal
        feature_names: Column names when ``train_features`` is an array
        fold_ids: Optional CV fold per row; distances then skip the own fold
        threshold_multiplier: ``t`` in median + t * MAD

    Returns:
        Immutable TrainingDissimilarity

    Raises:
        EmptyTrainingSetError: Fewer than 2 complete training rows
    """
    if isinstance(train_features, pd.DataFrame):
        feature_names = [str(c) for c in train_features.columns]
        X = train_features.to_numpy(dtype="float64")  # noqa: N806
    else:
        X = np.asarray(train_features, dtype="float64")  # noqa: N806
        if X.ndim == 1:
            X = X.reshape(-1, 1)  # noqa: N806
        if feature_names is None:
            feature_names = [f"x{i}" for i in range(X.shape[1])]

    complete = np.isfinite(X).all(axis=1)
    if fold_ids is not None:
        fold_ids = np.asarray(fold_ids)[complete]
    X = X[complete]  # noqa: N806
    if len(X) < 2:
        raise EmptyTrainingSetError(
            f"Need at least 2 complete training rows for the DI, got {len(X)}"
        )

    means = X.mean(axis=0)
    scales = X.std(axis=0, ddof=1)
    scales = np.where(np.isfinite(scales) & (scales > 0), scales, 1.0)
    weights = _normalise_weights(feature_names, feature_weights)

    scaled = (X - means) / scales * weights
    distances = _nearest_other(scaled, fold_ids)
    mean_distance = float(np.mean(distances))
    train_di = _to_di(distances, mean_distance)

    finite_di = train_di[np.isfinite(train_di)]
    threshold = float(
        np.median(finite_di)
        + threshold_multiplier * median_abs_deviation(finite_di, scale="normal")
    )

    logger.info(
        f"trainDI over {len(X)} rows and {len(feature_names)} features: "
        f"d̄={mean_distance:.4g}, threshold={threshold:.4g}"
    )
    return TrainingDissimilarity(
        feature_names=tuple(feature_names),
        means=means,
        scales=scales,
        weights=weights,
        train_scaled=scaled,
        train_distances=distances,
        mean_distance=mean_distance,
        train_di=train_di,
        threshold=threshold,
        threshold_multiplier=float(threshold_multiplier),
    )


def dissimilarity_index(train_di: TrainingDissimilarity, X: np.ndarray) -> np.ndarray:  # noqa: N803
    """DI for raw predictor rows; NaN where any predictor is missing."""
    X = np.asarray(X, dtype="float64")  # noqa: N806
    if X.ndim == 1:
        X = X.reshape(-1, len(train_di.feature_names))  # noqa: N806
    di = np.full(len(X), np.nan)
    valid = np.isfinite(X).all(axis=1)
    if valid.any():
        distances = cKDTree(train_di.train_scaled).query(train_di.transform(X[valid]), k=1)[0]
        di[valid] = _to_di(distances, train_di.mean_distance)
    return di


def score_area_of_applicability(
    train_di: TrainingDissimilarity,
    stack: PredictorStack,
    features: Sequence[str] | None = None,
    batch_size: int = 100_000,
) -> tuple[np.ndarray, np.ndarray]:
    """DI and AOA grids over the predictor stack.

    Args:
        train_di: Reference from ``fit_training_dissimilarity``
        stack: Predictor stack (read only)
        features: Bands to use, default ``train_di.feature_names``
        batch_size: Pixels per KD-tree query

    Returns:
        (di_grid, aoa_mask): DI is NaN where predictors are missing; the mask
        is True inside the AOA and False elsewhere
    """
    features = list(train_di.feature_names if features is None else features)
    if list(features) != list(train_di.feature_names):
        raise ValueError(
            f"Features {features} do not match training features {list(train_di.feature_names)}"
        )

    pixels = stack.pixel_matrix(features)
    di = np.full(len(pixels), np.nan)
    for start in range(0, len(pixels), batch_size):
        di[start : start + batch_size] = dissimilarity_index(
            train_di, pixels[start : start + batch_size]
        )

    di_grid = stack.to_grid(di)
    aoa_mask = np.isfinite(di_grid) & (di_grid <= train_di.threshold)
    logger.info(f"AOA covers {100 * aoa_coverage(di_grid, aoa_mask):.1f}% of valid pixels")
    return di_grid, aoa_mask


def aoa_coverage(di_grid: np.ndarray, aoa_mask: np.ndarray) -> float:
    """Fraction of pixels with a defined DI that are inside the AOA."""
    valid = ~np.isnan(di_grid)
    if not valid.any():
        return float("nan")
    return float(aoa_mask[valid].sum() / valid.sum())


def fit_from_model(
    selected_model, threshold_multiplier: float = 3.0, use_cv_folds: bool = False
) -> TrainingDissimilarity:
    """trainDI for a SelectedModel using its training rows and importance."""
    return fit_training_dissimilarity(
        selected_model.training_features,
        feature_weights=selected_model.variable_importance(),
        fold_ids=selected_model.fold_ids if use_cv_folds else None,
        threshold_multiplier=threshold_multiplier,
    )
