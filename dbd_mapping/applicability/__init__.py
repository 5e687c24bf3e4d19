"""Area of applicability from a feature-space dissimilarity index."""

from dbd_mapping.applicability.aoa import (
    TrainingDissimilarity,
    aoa_coverage,
    dissimilarity_index,
    fit_from_model,
    fit_training_dissimilarity,
    score_area_of_applicability,
)

__all__ = [
    "TrainingDissimilarity",
    "fit_training_dissimilarity",
    "fit_from_model",
    "dissimilarity_index",
    "score_area_of_applicability",
    "aoa_coverage",
]
