"""Spatial cross-validation: kNNDM folds and forward feature selection."""

from dbd_mapping.models.spatial_cv.knndm import (
    SpatialFolds,
    cv_nn_distances,
    knndm_partition,
    merge_clusters,
    random_folds,
)
from dbd_mapping.models.spatial_cv.parallel import (
    cross_validate_candidate,
    evaluate_candidates,
)
from dbd_mapping.models.spatial_cv.selection import forward_feature_selection, mtry_values

__all__ = [
    # Folds
    "SpatialFolds",
    "knndm_partition",
    "random_folds",
    "merge_clusters",
    "cv_nn_distances",
    # Cross-validation
    "cross_validate_candidate",
    "evaluate_candidates",
    # Selection
    "forward_feature_selection",
    "mtry_values",
]
