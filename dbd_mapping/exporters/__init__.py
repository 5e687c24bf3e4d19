"""Output sinks: rasters, AOA polygons and the run report."""

from dbd_mapping.exporters.aoa_polygons import polygonize_aoa, write_polygons
from dbd_mapping.exporters.rasters import AOA_NODATA, aoa_to_uint8, write_raster, write_rasters
from dbd_mapping.exporters.report import RunReport

__all__ = [
    "AOA_NODATA",
    "RunReport",
    "aoa_to_uint8",
    "polygonize_aoa",
    "write_polygons",
    "write_raster",
    "write_rasters",
]
