"""In-memory depth raster shared by the gap filler and the aggregator."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from pyproj import CRS
from rasterio.coords import BoundingBox
from rasterio.transform import array_bounds
from rasterio.windows import Window
from rasterio.windows import transform as window_transform
from shapely.geometry import box


@dataclass(frozen=True)
class Raster:
    """A single-band grid of depths. NaN marks no-data.

    The value array is copied to float64 and made read-only on construction.
    Transforms are assumed north-up (no rotation), as GEBCO-style grids are.
    """

    values: np.ndarray
    transform: object
    crs: object

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64, copy=True)
        if values.ndim != 2:
            raise ValueError(f"Raster values must be 2-D, got shape {values.shape}")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def shape(self):
        return self.values.shape

    @property
    def bounds(self) -> BoundingBox:
        height, width = self.shape
        west, south, east, north = array_bounds(height, width, self.transform)
        return BoundingBox(west, south, east, north)

    @property
    def footprint(self):
        return box(*self.bounds)

    @property
    def res(self):
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def nodata_mask(self) -> np.ndarray:
        return np.isnan(self.values)

    def window_for(self, bounds) -> Window:
        """Window of whole cells covering ``bounds``, clamped to the grid.

        Disjoint bounds give a zero-sized window.
        """

        west, south, east, north = bounds
        height, width = self.shape
        inverse = ~self.transform
        col_a, row_a = inverse @ (west, north)
        col_b, row_b = inverse @ (east, south)
        col_start = max(0, math.floor(min(col_a, col_b)))
        col_stop = min(width, math.ceil(max(col_a, col_b)))
        row_start = max(0, math.floor(min(row_a, row_b)))
        row_stop = min(height, math.ceil(max(row_a, row_b)))
        if col_stop <= col_start or row_stop <= row_start:
            return Window(0, 0, 0, 0)
        return Window(col_start, row_start, col_stop - col_start, row_stop - row_start)

    def window_transform(self, window: Window):
        return window_transform(window, self.transform)

    def read_window(self, window: Window) -> np.ndarray:
        row, col = int(window.row_off), int(window.col_off)
        return self.values[row:row + int(window.height), col:col + int(window.width)]


def same_crs(a, b) -> bool:
    """CRS equality across rasterio and pyproj objects, ignoring axis order."""

    if a is None or b is None:
        return False
    a, b = CRS.from_user_input(a), CRS.from_user_input(b)
    epsg_a, epsg_b = a.to_epsg(), b.to_epsg()
    if epsg_a is not None and epsg_b is not None:
        return epsg_a == epsg_b
    return a.equals(b, ignore_axis_order=True)
