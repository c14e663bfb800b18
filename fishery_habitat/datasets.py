"""Readers and writers for rasters, polygon layers and result tables."""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import numpy as np
import rasterio

from .config import NODATA_VALUE
from .errors import InputAlignmentError
from .log import get_logger
from .raster import Raster

LOGGER = get_logger(__name__)


def read_raster(path) -> Raster:
    """First band of a raster file, nodata converted to NaN."""

    with rasterio.open(path) as src:
        values = src.read(1).astype(np.float64)
        if src.nodata is not None and not np.isnan(src.nodata):
            values[values == src.nodata] = np.nan
        transform = src.transform
        crs = src.crs
    LOGGER.info(
        "read raster %s: %dx%d, %d no-data cell(s)",
        path, values.shape[1], values.shape[0], int(np.isnan(values).sum()),
    )
    return Raster(values, transform, crs)


def write_raster(raster: Raster, path, *, nodata: float = NODATA_VALUE) -> Path:
    """Write a float32 GeoTIFF with NaN stored as ``nodata``."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = np.where(np.isnan(raster.values), nodata, raster.values).astype(np.float32)
    height, width = raster.shape
    with rasterio.open(
        path, "w",
        driver="GTiff", height=height, width=width, count=1,
        dtype="float32", crs=raster.crs, transform=raster.transform,
        nodata=nodata, compress="deflate",
    ) as dst:
        dst.write(data, 1)
    LOGGER.info("wrote raster %s", path)
    return path


def read_polygons(path, *, id_column=None, allow_list=None, crs=None) -> gpd.GeoDataFrame:
    """Load a polygon layer, keep allow-listed ids and reproject to ``crs``."""

    frame = gpd.read_file(path)
    if frame.crs is None:
        raise InputAlignmentError(f"{path} has no coordinate reference system")
    if id_column is not None and id_column not in frame.columns:
        raise InputAlignmentError(f"{path} has no '{id_column}' attribute")
    if allow_list:
        frame = filter_allow_list(frame, id_column, allow_list)
    frame = frame[frame.geometry.notna() & ~frame.geometry.is_empty]
    if crs is not None:
        frame = frame.to_crs(crs)
    LOGGER.info("read %d polygon(s) from %s", len(frame), path)
    return frame


def filter_allow_list(frame: gpd.GeoDataFrame, id_column, allow_list) -> gpd.GeoDataFrame:
    """Rows whose id is in ``allow_list``; ids compare as text so 7 matches "7"."""

    if id_column is None:
        raise ValueError("an id column is required to apply an allow-list")
    allowed = {str(value) for value in allow_list}
    kept = frame[frame[id_column].astype(str).isin(allowed)].copy()
    missing = allowed - set(kept[id_column].astype(str))
    if missing:
        LOGGER.warning("allow-listed id(s) not found: %s", ", ".join(sorted(missing)))
    return kept


def write_table(frame, path) -> Path:
    """CSV keyed by region id."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index_label="region_id")
    LOGGER.info("wrote table %s (%d rows)", path, len(frame))
    return path
