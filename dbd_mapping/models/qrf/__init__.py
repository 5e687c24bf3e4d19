"""Quantile regression forest (multiple quantiles from one ensemble)."""

from dbd_mapping.models.qrf.forest import (
    QuantileForest,
    fit_quantile_forest,
    predict_quantile,
)

__all__ = [
    "QuantileForest",
    "fit_quantile_forest",
    "predict_quantile",
]
