"""
Bathymetry gap filling
======================
Fills no-data holes in a fine bathymetry grid from a coarse but complete
one, then smooths the blocky fill so it blends with its surroundings.
Measured fine cells are never changed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from rasterio.features import rasterize
from rasterio.warp import Resampling, reproject
from scipy.ndimage import convolve
from shapely.geometry import mapping
from shapely.ops import unary_union

from .errors import InputAlignmentError, ResidualGapError
from .log import get_logger
from .raster import Raster, same_crs

LOGGER = get_logger(__name__)

# Bilinear to cell corners then back to centres: [1, 2, 1] / 4 per axis
_BILINEAR_1D = np.array([1.0, 2.0, 1.0]) / 4.0
BILINEAR_KERNEL = np.outer(_BILINEAR_1D, _BILINEAR_1D)


@dataclass(frozen=True)
class GapFillResult:
    raster: Raster
    filled_cells: int
    residual: Optional[ResidualGapError] = None

    @property
    def residual_cells(self) -> int:
        return self.residual.count if self.residual is not None else 0


def _domain_geometry(domain, crs):
    """Single shapely geometry from a geometry, GeoSeries or GeoDataFrame."""

    if domain is None:
        return None
    if hasattr(domain, "geometry") and hasattr(domain, "crs"):
        if not same_crs(domain.crs, crs):
            raise InputAlignmentError(
                f"Domain CRS {domain.crs} does not match raster CRS {crs}"
            )
        return unary_union([g for g in domain.geometry if g is not None and not g.is_empty])
    return domain


def check_alignment(fine: Raster, coarse: Raster, domain=None):
    """Fail fast on CRS mismatch or non-overlapping extents.

    Returns the domain as one shapely geometry (or None for the full grid).
    """

    if not same_crs(fine.crs, coarse.crs):
        raise InputAlignmentError(
            f"Fine raster CRS {fine.crs} does not match coarse raster CRS {coarse.crs}"
        )
    overlap = fine.footprint.intersection(coarse.footprint)
    if overlap.is_empty or overlap.area <= 0:
        raise InputAlignmentError("Fine and coarse raster extents do not overlap")

    geom = _domain_geometry(domain, fine.crs)
    if geom is not None and not geom.intersects(fine.footprint):
        raise InputAlignmentError("Domain of interest does not overlap the fine raster")
    return geom


def domain_mask(raster: Raster, geom) -> np.ndarray:
    """Cells whose centres fall inside ``geom`` (all cells when None)."""

    if geom is None:
        return np.ones(raster.shape, dtype=bool)
    return rasterize(
        [(mapping(geom), 1)],
        out_shape=raster.shape, transform=raster.transform,
        fill=0, dtype=np.uint8,
    ).astype(bool)


def resample_nearest(coarse: Raster, fine: Raster) -> np.ndarray:
    """Coarse values on the fine grid; each fine cell takes the coarse cell
    containing its centre. Cells outside the coarse grid come back NaN."""

    xres, yres = coarse.res
    west, south, east, north = fine.bounds
    window = coarse.window_for((west - xres, south - yres, east + xres, north + yres))
    # contiguous, writable copy for GDAL
    source = np.array(coarse.read_window(window), dtype=np.float64, copy=True)

    destination = np.full(fine.shape, np.nan, dtype=np.float64)
    if source.size == 0:
        return destination
    reproject(
        source=source,
        destination=destination,
        src_transform=coarse.window_transform(window),
        src_crs=coarse.crs,
        src_nodata=np.nan,
        dst_transform=fine.transform,
        dst_crs=fine.crs,
        dst_nodata=np.nan,
        resampling=Resampling.nearest,
    )
    return destination


def smooth_bilinear(values: np.ndarray) -> np.ndarray:
    """Bilinear round trip through cell corners on the same grid.

    Normalised convolution: NaN cells carry no weight, so gaps never bleed
    into their neighbours, and cells with no valid neighbour stay NaN.
    """

    valid = np.isfinite(values)
    weights = convolve(valid.astype(np.float64), BILINEAR_KERNEL, mode="nearest")
    sums = convolve(np.where(valid, values, 0.0), BILINEAR_KERNEL, mode="nearest")
    smoothed = np.full(values.shape, np.nan, dtype=np.float64)
    np.divide(sums, weights, out=smoothed, where=weights > 0)
    return smoothed


def fill_gaps(fine: Raster, coarse: Raster, domain=None, *, strict: bool = False) -> GapFillResult:
    """Composite ``coarse`` into the no-data cells of ``fine``.

    The output sits on ``fine``'s exact grid. Only cells that were no-data
    in ``fine`` and lie inside ``domain`` may change. Cells the coarse grid
    cannot reach stay NaN and are reported as a :class:`ResidualGapError`,
    which is raised only when ``strict`` is set.
    """

    geom = check_alignment(fine, coarse, domain)
    inside = domain_mask(fine, geom)
    to_fill = fine.nodata_mask & inside

    if not to_fill.any():
        LOGGER.info("fine raster has no gaps inside the domain; returned unchanged")
        return GapFillResult(raster=fine, filled_cells=0)

    LOGGER.info("filling %d no-data cell(s) from coarse raster", int(to_fill.sum()))
    nearest = resample_nearest(coarse, fine)
    first_pass = np.where(fine.nodata_mask, nearest, fine.values)
    smoothed = smooth_bilinear(first_pass)

    # cells the coarse grid never reached stay no-data
    fillable = to_fill & np.isfinite(nearest)
    composite = np.array(fine.values, copy=True)
    composite[fillable] = smoothed[fillable]

    residual_count = int((np.isnan(composite) & inside).sum())
    filled = int(fillable.sum())
    residual = None
    if residual_count:
        residual = ResidualGapError(residual_count)
        LOGGER.warning("%s; excluded from sampling", residual)
        if strict:
            raise residual

    result = Raster(composite, fine.transform, fine.crs)
    LOGGER.info("gap filling complete: %d cell(s) filled", filled)
    return GapFillResult(raster=result, filled_cells=filled, residual=residual)
