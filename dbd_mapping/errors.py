"""Error taxonomy for the spatial modelling pipeline.

All errors derive from ``DBDMappingError`` and from ``ValueError`` so that
callers validating inputs with ``except ValueError`` keep working.

- ``InsufficientDataError``: too few observations for the requested folds,
  or a degenerate prediction domain.
- ``TrainingError``: invalid forest parameters or no usable training rows.
- ``NoFeatureImprovesError``: selection could not beat the baseline. This one
  is normally recovered: the best single feature is kept and the model is
  flagged as not validated.
- ``EmptyTrainingSetError``: the area of applicability is undefined because
  fewer than two training rows are available.
"""


class DBDMappingError(ValueError):
    """Base class for all pipeline errors."""


class InsufficientDataError(DBDMappingError):
    """Raised when observations or the domain cannot support the requested folds."""


class TrainingError(DBDMappingError):
    """Raised when a quantile forest cannot be fitted with the given inputs."""


class NoFeatureImprovesError(DBDMappingError):
    """Raised (or recorded) when no single feature exceeds the baseline R²."""


class EmptyTrainingSetError(DBDMappingError):
    """Raised when the dissimilarity index cannot be defined."""


__all__ = [
    "DBDMappingError",
    "InsufficientDataError",
    "TrainingError",
    "NoFeatureImprovesError",
    "EmptyTrainingSetError",
]
