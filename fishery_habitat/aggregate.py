"""
Region depth aggregation
========================
Per reporting region: polygon area in the equal-area CRS, split across depth
strata by the share of raster cells falling in each stratum, for the whole
region and for its protected part.

Cell-count fraction stands in for polygon area fraction; cells are not
clipped against region boundaries.
"""

from __future__ import annotations

import contextvars
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import geopandas as gpd
import pandas as pd
from rasterio.features import geometry_mask
from rasterio.windows import Window
from shapely.geometry import box
from shapely.ops import unary_union

from .config import region_sort_key
from .errors import InputAlignmentError
from .log import get_logger
from .raster import Raster, same_crs
from .strata import DepthStratum, StratumCounter

LOGGER = get_logger(__name__)

M2_PER_KM2 = 1e6
REGION_ID = "region_id"
PROTECTION_ID = "protection_id"


@dataclass(frozen=True)
class RegionStratumRecord:
    """Areas (km2) for one region under one protected-area layout."""

    region_id: object
    total_area: float
    stratum_areas: Tuple[float, ...]
    protected_area: float
    protected_stratum_areas: Tuple[float, ...]
    n_samples: int
    n_protected_samples: int


def check_inputs(composite: Raster, regions: gpd.GeoDataFrame, protection: gpd.GeoDataFrame):
    """All layers share one projected CRS and the regions overlap the grid."""

    if regions.crs is None or not regions.crs.is_projected:
        raise InputAlignmentError(
            f"Reporting regions must be in a projected equal-area CRS, got {regions.crs}"
        )
    if not same_crs(regions.crs, composite.crs):
        raise InputAlignmentError(
            f"Region CRS {regions.crs} does not match raster CRS {composite.crs}"
        )
    if not same_crs(protection.crs, regions.crs):
        raise InputAlignmentError(
            f"Protection CRS {protection.crs} does not match region CRS {regions.crs}"
        )
    if len(regions) and not box(*regions.total_bounds).intersects(composite.footprint):
        raise InputAlignmentError("Reporting regions do not overlap the raster extent")


def subdivide_regions(
    regions: gpd.GeoDataFrame,
    protection: gpd.GeoDataFrame,
    *,
    region_id_column: str,
    protection_id_column: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """Split every region by the full protection set.

    Each part is tagged with ``region_id`` and ``protection_id``, which is
    None where no protection polygon covers the part. Without an id
    column the protection row index is used as the id.
    """

    regs = gpd.GeoDataFrame(
        {REGION_ID: regions[region_id_column].to_numpy()},
        geometry=regions.geometry.to_numpy(), crs=regions.crs,
    )
    if len(protection) == 0:
        regs[PROTECTION_ID] = None
        return regs

    if protection_id_column is None:
        ids = protection.index.to_numpy()
    elif protection_id_column in protection.columns:
        ids = protection[protection_id_column].to_numpy()
    else:
        raise KeyError(f"protection id column '{protection_id_column}' not found")
    prot = gpd.GeoDataFrame(
        {PROTECTION_ID: ids}, geometry=protection.geometry.to_numpy(), crs=protection.crs
    )

    parts = gpd.overlay(regs, prot, how="identity", keep_geom_type=True)
    parts[PROTECTION_ID] = pd.Series(
        [None if pd.isna(tag) else tag for tag in parts[PROTECTION_ID]],
        index=parts.index, dtype=object,
    )
    return parts[~parts.geometry.is_empty]


def _count_cells(raster: Raster, geom, strata, block_rows, within=None):
    """Stream per-stratum counts of cell centres inside ``geom``.

    ``within`` further restricts counting to cells also inside that geometry.
    """

    counter = StratumCounter(strata)
    if geom is None or geom.is_empty:
        return counter
    window = raster.window_for(geom.bounds)
    if window.width == 0 or window.height == 0:
        return counter

    height = int(window.height)
    for start in range(0, height, block_rows):
        rows = min(block_rows, height - start)
        block = Window(window.col_off, window.row_off + start, window.width, rows)
        transform = raster.window_transform(block)
        shape = (rows, int(window.width))
        inside = geometry_mask([geom], out_shape=shape, transform=transform, invert=True)
        if within is not None:
            inside &= geometry_mask([within], out_shape=shape, transform=transform, invert=True)
        if inside.any():
            counter.update(raster.read_window(block)[inside])
    return counter


def stratify_region(
    region_id,
    footprint,
    protected,
    area_km2: float,
    composite: Raster,
    strata: Sequence[DepthStratum],
    *,
    block_rows: int = 512,
) -> RegionStratumRecord:
    """Build one region's record from its footprint and protected union."""

    total = _count_cells(composite, footprint, strata, block_rows)
    n_samples = total.total
    if n_samples == 0:
        LOGGER.info("region %s: no valid raster cells; all areas set to zero", region_id)
        zeros = tuple(0.0 for _ in strata)
        return RegionStratumRecord(region_id, 0.0, zeros, 0.0, zeros, 0, 0)

    if protected is None or protected.is_empty:
        prot = StratumCounter(strata)
    else:
        prot = _count_cells(composite, protected, strata, block_rows, within=footprint)

    # protected shares use the region's sample count too
    scale = area_km2 / n_samples
    stratum_areas = tuple(float(c) * scale for c in total.counts)
    protected_areas = tuple(float(c) * scale for c in prot.counts)
    return RegionStratumRecord(
        region_id=region_id,
        total_area=float(area_km2),
        stratum_areas=stratum_areas,
        protected_area=float(sum(protected_areas)),
        protected_stratum_areas=protected_areas,
        n_samples=n_samples,
        n_protected_samples=prot.total,
    )


def aggregate_regions(
    composite: Raster,
    strata: Sequence[DepthStratum],
    regions: gpd.GeoDataFrame,
    protection: gpd.GeoDataFrame,
    *,
    region_id_column: str,
    protection_id_column: Optional[str] = None,
    workers: int = 1,
    block_rows: int = 512,
) -> List[RegionStratumRecord]:
    """One stratum record per region id, sorted by numeric region id."""

    check_inputs(composite, regions, protection)
    parts = subdivide_regions(
        regions, protection,
        region_id_column=region_id_column,
        protection_id_column=protection_id_column,
    )

    areas = (regions.geometry.area / M2_PER_KM2).groupby(regions[region_id_column].to_numpy()).sum()
    jobs = []
    for region_id, group in regions.groupby(region_id_column, sort=False):
        footprint = unary_union(list(group.geometry))
        covered = parts[(parts[REGION_ID] == region_id) & parts[PROTECTION_ID].notna()]
        protected = unary_union(list(covered.geometry)) if len(covered) else None
        jobs.append((region_id, footprint, protected, float(areas[region_id])))
    LOGGER.info("stratifying %d region(s) over %d strata", len(jobs), len(strata))

    def run(job):
        region_id, footprint, protected, area = job
        return stratify_region(
            region_id, footprint, protected, area, composite, strata, block_rows=block_rows
        )

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # one copy of the caller's context per job carries the vintage tag
            futures = [pool.submit(contextvars.copy_context().run, run, job) for job in jobs]
            records = [future.result() for future in futures]
    else:
        records = [run(job) for job in jobs]
    return sorted(records, key=lambda record: region_sort_key(record.region_id))


def records_to_frame(records: Sequence[RegionStratumRecord], strata: Sequence[DepthStratum]) -> pd.DataFrame:
    """Flatten records into the per-region stratum table."""

    rows = []
    for record in records:
        row = {REGION_ID: record.region_id, "total_area": record.total_area}
        for stratum, value in zip(strata, record.stratum_areas):
            row[f"area_{stratum.label}"] = value
        row["protected_area"] = record.protected_area
        for stratum, value in zip(strata, record.protected_stratum_areas):
            row[f"protected_{stratum.label}"] = value
        row["n_samples"] = record.n_samples
        row["n_protected_samples"] = record.n_protected_samples
        rows.append(row)

    columns = (
        [REGION_ID, "total_area"]
        + [f"area_{s.label}" for s in strata]
        + ["protected_area"]
        + [f"protected_{s.label}" for s in strata]
        + ["n_samples", "n_protected_samples"]
    )
    return pd.DataFrame(rows, columns=columns).set_index(REGION_ID)
