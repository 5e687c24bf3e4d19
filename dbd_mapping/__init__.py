"""Spatial prediction of sediment dry bulk density with quantile regression forests."""

from dbd_mapping.config.settings import Settings
from dbd_mapping.errors import (
    DBDMappingError,
    EmptyTrainingSetError,
    InsufficientDataError,
    NoFeatureImprovesError,
    TrainingError,
)
from dbd_mapping.pipeline import PipelineResult, run_modeling, run_pipeline

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "DBDMappingError",
    "EmptyTrainingSetError",
    "InsufficientDataError",
    "NoFeatureImprovesError",
    "TrainingError",
    "PipelineResult",
    "run_modeling",
    "run_pipeline",
]
