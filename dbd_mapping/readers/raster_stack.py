"""Co-registered predictor raster stack.

The stack holds every predictor band as one ``(bands, rows, cols)`` float
array with NaN as nodata, plus the affine transform and CRS shared by all
bands. Models consume it either pixel-wise (``pixel_matrix``) or at point
locations (``extract``).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import rasterio
from rasterio.features import geometry_mask
from rasterio.transform import Affine, rowcol

from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("raster_stack")


def _read_band(src: rasterio.io.DatasetReader, index: int) -> np.ndarray:
    """Read one band as float64 with nodata replaced by NaN."""
    band = src.read(index, masked=True).astype("float64")
    return band.filled(np.nan)


@dataclass(frozen=True)
class PredictorStack:
    """Named predictor bands on one grid.

    Attributes:
        data: Array of shape (bands, rows, cols), NaN where missing
        names: Band names, unique, one per band
        transform: Affine transform of the grid
        crs: Coordinate reference system (rasterio CRS, WKT/EPSG string or None)
    """

    data: np.ndarray
    names: tuple[str, ...]
    transform: Affine
    crs: Any = None

    def __post_init__(self) -> None:
        data = np.asarray(self.data, dtype="float64")
        if data.ndim != 3:
            raise ValueError(f"Stack data must be 3D (bands, rows, cols), got {data.shape}")
        names = tuple(str(n) for n in self.names)
        if len(names) != data.shape[0]:
            raise ValueError(
                f"Got {len(names)} band names for {data.shape[0]} bands"
            )
        if len(set(names)) != len(names):
            raise ValueError(f"Band names must be unique: {names}")
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "names", names)

    @property
    def shape(self) -> tuple[int, int]:
        """Grid shape (rows, cols)."""
        return self.data.shape[1], self.data.shape[2]

    @property
    def n_pixels(self) -> int:
        return self.shape[0] * self.shape[1]

    def band(self, name: str) -> np.ndarray:
        """Return a copy of one band."""
        return self.data[self._index(name)].copy()

    def _index(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise KeyError(f"Unknown band '{name}', available: {list(self.names)}") from None

    def subset(self, names: Sequence[str]) -> "PredictorStack":
        """Return a new stack restricted to ``names`` (in that order)."""
        idx = [self._index(n) for n in names]
        return PredictorStack(self.data[idx].copy(), tuple(names), self.transform, self.crs)

    def pixel_matrix(self, names: Sequence[str] | None = None) -> np.ndarray:
        """Return pixels as rows of shape (rows * cols, n_bands), row-major."""
        names = list(self.names) if names is None else list(names)
        idx = [self._index(n) for n in names]
        return self.data[idx].reshape(len(idx), -1).T.copy()

    def to_grid(self, values: np.ndarray) -> np.ndarray:
        """Reshape a per-pixel vector from ``pixel_matrix`` order back to the grid."""
        values = np.asarray(values)
        if values.shape[0] != self.n_pixels:
            raise ValueError(f"Expected {self.n_pixels} pixel values, got {values.shape[0]}")
        return values.reshape(self.shape)

    def extract(self, coords: np.ndarray) -> pd.DataFrame:
        """Sample every band at point coordinates.

        Points outside the grid get NaN for all bands.

        Args:
            coords: Array of shape (n, 2) with x, y in the stack CRS

        Returns:
            DataFrame with one column per band, one row per point
        """
        coords = np.asarray(coords, dtype="float64").reshape(-1, 2)
        values = np.full((len(coords), len(self.names)), np.nan)
        if len(coords) == 0:
            return pd.DataFrame(values, columns=list(self.names))

        rows, cols = rowcol(self.transform, coords[:, 0], coords[:, 1])
        rows = np.asarray(rows, dtype=int)
        cols = np.asarray(cols, dtype=int)
        inside = (rows >= 0) & (rows < self.shape[0]) & (cols >= 0) & (cols < self.shape[1])
        values[inside] = self.data[:, rows[inside], cols[inside]].T
        return pd.DataFrame(values, columns=list(self.names))

    def mask(self, geometry: Any) -> "PredictorStack":
        """Return a copy with every cell outside ``geometry`` set to NaN."""
        outside = geometry_mask(
            [geometry], out_shape=self.shape, transform=self.transform, invert=False
        )
        data = self.data.copy()
        data[:, outside] = np.nan
        return PredictorStack(data, self.names, self.transform, self.crs)

    @classmethod
    def from_file(
        cls, path: str | Path, band_names: Sequence[str] | None = None
    ) -> "PredictorStack":
        """Read a multi-band raster.

        Band names come from ``band_names``, else from the band descriptions,
        else ``band_1..band_n``.
        """
        with rasterio.open(path) as src:
            data = np.stack([_read_band(src, i) for i in range(1, src.count + 1)])
            if band_names is None:
                band_names = [
                    desc if desc else f"band_{i + 1}"
                    for i, desc in enumerate(src.descriptions)
                ]
            stack = cls(data, tuple(band_names), src.transform, src.crs)

        logger.info(f"Loaded {len(stack.names)} bands {stack.shape} from {path}")
        return stack

    @classmethod
    def from_files(cls, files: Mapping[str, str | Path]) -> "PredictorStack":
        """Read single-band rasters into one stack, checking co-registration."""
        if not files:
            raise ValueError("No predictor files given")

        bands = []
        reference = None
        for name, path in files.items():
            with rasterio.open(path) as src:
                grid = (src.height, src.width, src.transform, src.crs)
                if reference is None:
                    reference = grid
                elif grid != reference:
                    raise ValueError(
                        f"Predictor '{name}' ({path}) is not co-registered with "
                        f"'{next(iter(files))}'"
                    )
                bands.append(_read_band(src, 1))

        assert reference is not None
        stack = cls(np.stack(bands), tuple(files), reference[2], reference[3])
        logger.info(f"Loaded {len(stack.names)} predictor files on grid {stack.shape}")
        return stack
