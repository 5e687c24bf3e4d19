"""Polygonized area of applicability."""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import numpy as np
from rasterio.features import shapes
from shapely.geometry import shape

from dbd_mapping.readers.raster_stack import PredictorStack
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("exporters")


def polygonize_aoa(
    aoa_mask: np.ndarray,
    template: PredictorStack,
    valid: np.ndarray | None = None,
    dissolve: bool = True,
) -> gpd.GeoDataFrame:
    """Turn the AOA mask into polygons with an ``aoa`` attribute (1 inside, 0 outside).

    Args:
        aoa_mask: Boolean grid, True inside the AOA
        template: Stack providing transform and CRS
        valid: Pixels to polygonize (default: all)
        dissolve: Merge polygons per ``aoa`` value

    Returns:
        GeoDataFrame in the template CRS
    """
    values = aoa_mask.astype("uint8")
    mask = np.ones(values.shape, dtype=bool) if valid is None else valid.astype(bool)

    records = [
        {"aoa": int(value), "geometry": shape(geom)}
        for geom, value in shapes(values, mask=mask, transform=template.transform)
    ]
    gdf = gpd.GeoDataFrame(records, columns=["aoa", "geometry"], geometry="geometry", crs=template.crs)
    if dissolve and not gdf.empty:
        gdf = gdf.dissolve(by="aoa", as_index=False)

    logger.info(f"Polygonized AOA into {len(gdf)} features")
    return gdf


def write_polygons(gdf: gpd.GeoDataFrame, path: str | Path, layer: str = "aoa") -> Path:
    """Write polygons to a GeoPackage."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    gdf.to_file(path, layer=layer, driver="GPKG")
    logger.info(f"Wrote {path} ({len(gdf)} features)")
    return path
