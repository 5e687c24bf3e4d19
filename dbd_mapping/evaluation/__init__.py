"""Evaluation metrics module."""

from .metrics import mean_error, mse, r_squared, rmse, validation_summary

__all__ = [
    "mean_error",
    "mse",
    "rmse",
    "r_squared",
    "validation_summary",
]
