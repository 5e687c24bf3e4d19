"""Point observations joined with predictor values."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd

from dbd_mapping.readers.raster_stack import PredictorStack
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("point_set")


@dataclass(frozen=True)
class PointSet:
    """Observations with complete predictor values.

    Attributes:
        coords: Array of shape (n, 2) in the stack CRS
        response: Array of shape (n,)
        predictors: DataFrame (n rows, one column per band)
        crs: CRS of the coordinates
    """

    coords: np.ndarray
    response: np.ndarray
    predictors: pd.DataFrame
    crs: object = None

    def __post_init__(self) -> None:
        n = len(self.response)
        if self.coords.shape != (n, 2) or len(self.predictors) != n:
            raise ValueError(
                f"Inconsistent point set: coords {self.coords.shape}, "
                f"response {n}, predictors {len(self.predictors)}"
            )

    def __len__(self) -> int:
        return len(self.response)

    @property
    def feature_names(self) -> list[str]:
        return list(self.predictors.columns)

    @classmethod
    def from_arrays(
        cls,
        coords: np.ndarray,
        response: np.ndarray,
        stack: PredictorStack,
    ) -> "PointSet":
        """Extract predictors at ``coords`` and drop incomplete rows."""
        coords = np.asarray(coords, dtype="float64").reshape(-1, 2)
        response = np.asarray(response, dtype="float64").ravel()
        if len(coords) != len(response):
            raise ValueError(
                f"{len(coords)} coordinates but {len(response)} response values"
            )

        predictors = stack.extract(coords)
        complete = predictors.notna().all(axis=1).to_numpy() & np.isfinite(response)
        n_dropped = int((~complete).sum())
        if n_dropped:
            logger.warning(
                f"Dropped {n_dropped}/{len(response)} observations with missing values"
            )

        return cls(
            coords=coords[complete],
            response=response[complete],
            predictors=predictors.loc[complete].reset_index(drop=True),
            crs=stack.crs,
        )

    @classmethod
    def from_geodataframe(
        cls, gdf: gpd.GeoDataFrame, response_column: str, stack: PredictorStack
    ) -> "PointSet":
        """Build from a point GeoDataFrame, converting it to the stack CRS."""
        if response_column not in gdf.columns:
            raise KeyError(f"Response column '{response_column}' not in {list(gdf.columns)}")
        if stack.crs is not None and gdf.crs is not None and gdf.crs != stack.crs:
            gdf = gdf.to_crs(stack.crs)

        coords = np.column_stack([gdf.geometry.x.to_numpy(), gdf.geometry.y.to_numpy()])
        response = pd.to_numeric(gdf[response_column], errors="coerce").to_numpy(dtype="float64")
        return cls.from_arrays(coords, response, stack)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        response_column: str,
        stack: PredictorStack,
        layer: str | None = None,
    ) -> "PointSet":
        """Read observations from a vector file."""
        gdf = gpd.read_file(path, layer=layer)
        points = cls.from_geodataframe(gdf, response_column, stack)
        logger.info(f"Loaded {len(points)} usable observations from {path}")
        return points

    def to_geodataframe(self) -> gpd.GeoDataFrame:
        """Observations with predictors and response as a GeoDataFrame."""
        frame = self.predictors.copy()
        frame["response"] = self.response
        return gpd.GeoDataFrame(
            frame,
            geometry=gpd.points_from_xy(self.coords[:, 0], self.coords[:, 1]),
            crs=self.crs,
        )
