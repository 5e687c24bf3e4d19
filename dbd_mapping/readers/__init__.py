"""Input carriers: predictor stack, observations and prediction domain."""

from dbd_mapping.readers.domain import load_domain, sample_points_in_polygon, validate_domain
from dbd_mapping.readers.point_set import PointSet
from dbd_mapping.readers.raster_stack import PredictorStack

__all__ = [
    "PredictorStack",
    "PointSet",
    "load_domain",
    "sample_points_in_polygon",
    "validate_domain",
]
