"""GeoTIFF output on the predictor grid."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import numpy as np
import rasterio

from dbd_mapping.readers.raster_stack import PredictorStack
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("exporters")

AOA_NODATA = 255


def write_raster(
    path: str | Path,
    array: np.ndarray,
    template: PredictorStack,
    dtype: str = "float32",
    nodata: float | int | None = None,
    description: str | None = None,
) -> Path:
    """Write a single-band GeoTIFF on the template grid.

    Float rasters use NaN as nodata unless ``nodata`` is given.

    Args:
        path: Output file
        array: Grid of shape ``template.shape``
        template: Stack providing transform and CRS
        dtype: Output data type
        nodata: Nodata value
        description: Band description
    """
    path = Path(path)
    if array.shape != template.shape:
        raise ValueError(f"Array shape {array.shape} does not match grid {template.shape}")
    if nodata is None and np.issubdtype(np.dtype(dtype), np.floating):
        nodata = np.nan

    path.parent.mkdir(parents=True, exist_ok=True)
    profile = {
        "driver": "GTiff",
        "height": template.shape[0],
        "width": template.shape[1],
        "count": 1,
        "dtype": dtype,
        "crs": template.crs,
        "transform": template.transform,
        "nodata": nodata,
        "compress": "deflate",
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(array.astype(dtype), 1)
        if description:
            dst.set_band_description(1, description)

    logger.info(f"Wrote {path}")
    return path


def aoa_to_uint8(di_grid: np.ndarray, aoa_mask: np.ndarray) -> np.ndarray:
    """1 inside, 0 outside the AOA, ``AOA_NODATA`` where the DI is undefined."""
    out = np.where(aoa_mask, 1, 0).astype("uint8")
    out[np.isnan(di_grid)] = AOA_NODATA
    return out


def write_rasters(
    output_dir: str | Path,
    rasters: Mapping[str, np.ndarray],
    template: PredictorStack,
) -> dict[str, Path]:
    """Write several float rasters named ``<name>.tif``."""
    output_dir = Path(output_dir)
    return {
        name: write_raster(output_dir / f"{name}.tif", grid, template, description=name)
        for name, grid in rasters.items()
    }
