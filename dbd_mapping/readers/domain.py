"""Prediction domain polygon: loading and uniform point sampling."""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry

from dbd_mapping.errors import InsufficientDataError
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("domain")


def load_domain(
    path: str | Path, layer: str | None = None, crs: object | None = None
) -> BaseGeometry:
    """Read a polygon layer and dissolve it into a single geometry.

    Args:
        path: Vector file readable by geopandas
        layer: Optional layer name (GeoPackage)
        crs: If given and different from the layer CRS, the layer is
            converted to it so the domain matches the predictor grid

    Returns:
        Union of all features
    """
    gdf = gpd.read_file(path, layer=layer)
    if crs is not None and gdf.crs is not None and gdf.crs != crs:
        gdf = gdf.to_crs(crs)
    domain = gdf.geometry.union_all()
    logger.info(f"Domain from {path}: {len(gdf)} features, area {domain.area:.1f}")
    return domain


def validate_domain(domain: BaseGeometry | None) -> BaseGeometry:
    """Return ``domain`` if it is a usable polygon, raise otherwise."""
    if domain is None or domain.is_empty:
        raise InsufficientDataError("Prediction domain is empty")
    if domain.area <= 0:
        raise InsufficientDataError(
            f"Prediction domain is degenerate ({domain.geom_type} with zero area)"
        )
    return domain


def sample_points_in_polygon(
    domain: BaseGeometry,
    n_points: int,
    random_state: int = 42,
    max_rounds: int = 1000,
) -> np.ndarray:
    """Draw points uniformly inside a polygon by rejection sampling.

    Args:
        domain: Polygon or multipolygon
        n_points: Number of points to return
        random_state: Seed of the generator
        max_rounds: Cap on sampling rounds (guards very thin domains)

    Returns:
        Array of shape (n_points, 2)

    Raises:
        InsufficientDataError: Domain is empty/degenerate or points cannot be placed
    """
    domain = validate_domain(domain)
    rng = np.random.default_rng(random_state)
    minx, miny, maxx, maxy = domain.bounds
    fill_ratio = domain.area / max((maxx - minx) * (maxy - miny), np.finfo(float).tiny)
    batch = max(64, int(np.ceil(n_points / max(fill_ratio, 1e-3))))

    shapely.prepare(domain)
    accepted: list[np.ndarray] = []
    count = 0
    for _ in range(max_rounds):
        xs = rng.uniform(minx, maxx, batch)
        ys = rng.uniform(miny, maxy, batch)
        inside = shapely.contains_xy(domain, xs, ys)
        if inside.any():
            accepted.append(np.column_stack([xs[inside], ys[inside]]))
            count += int(inside.sum())
        if count >= n_points:
            break
    else:
        raise InsufficientDataError(
            f"Could only place {count}/{n_points} sample points inside the domain"
        )

    return np.vstack(accepted)[:n_points]
