"""Full-domain quantile prediction and interval rasters."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import numpy as np

from dbd_mapping.models.selected_model import SelectedModel
from dbd_mapping.readers.raster_stack import PredictorStack
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("prediction")


def predict_domain(
    model: SelectedModel,
    stack: PredictorStack,
    features: Sequence[str] | None = None,
    quantiles: Sequence[float] = (0.05, 0.5, 0.95),
    batch_size: int = 50_000,
) -> dict[float, np.ndarray]:
    """Predict every requested quantile on the stack grid.

    Pixels missing any selected predictor stay NaN. The stack is not modified.

    Args:
        model: Selected model with a fitted forest
        stack: Predictor stack
        features: Bands to feed the model, default ``model.features``
        quantiles: Quantile levels
        batch_size: Pixels per prediction batch

    Returns:
        Mapping quantile -> grid of shape ``stack.shape``
    """
    features = list(model.features if features is None else features)
    if features != list(model.features):
        raise ValueError(f"Features {features} do not match model features {model.features}")

    quantiles = [float(q) for q in quantiles]
    pixels = stack.pixel_matrix(features)
    valid = np.isfinite(pixels).all(axis=1)
    valid_idx = np.flatnonzero(valid)
    out = np.full((len(pixels), len(quantiles)), np.nan)

    logger.info(
        f"Predicting quantiles {quantiles} for {len(valid_idx)}/{len(pixels)} pixels"
    )
    for start in range(0, len(valid_idx), batch_size):
        idx = valid_idx[start : start + batch_size]
        out[idx] = model.predict_quantiles(pixels[idx], quantiles)

    return {q: stack.to_grid(out[:, j]) for j, q in enumerate(quantiles)}


def prediction_interval(
    predictions: Mapping[float, np.ndarray],
    lower: float = 0.05,
    upper: float = 0.95,
    median: float = 0.5,
) -> tuple[np.ndarray, np.ndarray]:
    """Interval width (upper - lower) and its ratio to the median.

    The ratio is NaN where the median is zero or missing.
    """
    for q in (lower, upper, median):
        if q not in predictions:
            raise KeyError(f"Quantile {q} not predicted (have {sorted(predictions)})")

    width = predictions[upper] - predictions[lower]
    med = predictions[median]
    ratio = np.full(width.shape, np.nan)
    usable = np.isfinite(med) & (med != 0) & np.isfinite(width)
    np.divide(width, med, out=ratio, where=usable)
    return width, ratio
