"""Configuration module."""

from .settings import (
    ApplicabilityConfig,
    DataConfig,
    ForestConfig,
    PartitionConfig,
    PathConfig,
    PredictionConfig,
    SelectionConfig,
    Settings,
)

__all__ = [
    "Settings",
    "DataConfig",
    "PartitionConfig",
    "ForestConfig",
    "SelectionConfig",
    "ApplicabilityConfig",
    "PredictionConfig",
    "PathConfig",
]
