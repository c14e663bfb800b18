"""
Habitat protection pipeline
===========================
Builds the composite bathymetry once, then runs the same region/stratum
aggregation and protection gate for each protected-area vintage. A vintage
that fails validation writes nothing; the others still run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional

import geopandas as gpd
import pandas as pd

from .aggregate import aggregate_regions, check_inputs, records_to_frame
from .config import HABITAT_BAND, AnalysisConfig, VintageConfig
from .datasets import read_polygons, read_raster, write_raster, write_table
from .errors import InputAlignmentError, ValidationFailure
from .gapfill import GapFillResult, fill_gaps
from .log import get_logger, vintage_context
from .protection import compute_protection, output_columns
from .raster import Raster, same_crs
from .strata import build_strata

LOGGER = get_logger(__name__)


@dataclass
class VintageResult:
    name: str
    table: pd.DataFrame
    path: Optional[Path] = None


@dataclass
class RunSummary:
    """What a run produced, including how long it took."""

    composite_path: Optional[Path]
    gap_fill: GapFillResult
    results: Dict[str, VintageResult] = field(default_factory=dict)
    failures: Dict[str, ValidationFailure] = field(default_factory=dict)
    overview_path: Optional[Path] = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures


def run_vintage(
    composite: Raster,
    strata,
    regions: gpd.GeoDataFrame,
    protection: gpd.GeoDataFrame,
    *,
    vintage: str,
    region_id_column: str,
    protection_id_column: Optional[str] = None,
    band=HABITAT_BAND,
    workers: int = 1,
    block_rows: int = 512,
) -> pd.DataFrame:
    """Stratum table plus protected fraction for one protected-area layout.

    Raises :class:`ValidationFailure` if any region breaks an invariant.
    """

    with vintage_context(vintage):
        records = aggregate_regions(
            composite, strata, regions, protection,
            region_id_column=region_id_column,
            protection_id_column=protection_id_column,
            workers=workers,
            block_rows=block_rows,
        )
        empty = [record.region_id for record in records if record.n_samples == 0]
        if empty:
            LOGGER.info("region(s) with no raster samples: %s",
                        ", ".join(str(r) for r in empty))
        table = records_to_frame(records, strata)
        return compute_protection(table, strata, band, vintage)


def _check_equal_area(raster: Raster, crs: str, label: str) -> None:
    if not same_crs(raster.crs, crs):
        raise InputAlignmentError(
            f"{label} raster CRS {raster.crs} is not the equal-area CRS {crs}"
        )


def _load_vintage(vintage: VintageConfig, crs: str) -> gpd.GeoDataFrame:
    if vintage.path is None:
        raise ValueError(f"vintage '{vintage.name}' has no path configured")
    return read_polygons(vintage.path, id_column=vintage.id_column, crs=crs)


def run_analysis(config: AnalysisConfig, echo: Optional[Callable[[str], None]] = None) -> RunSummary:
    """Run the whole analysis described by ``config``.

    ``echo`` receives one line per stage (the CLI passes ``print``).
    Alignment problems raise :class:`InputAlignmentError` before any
    computation.
    """
    echo = echo or LOGGER.info
    started = time.perf_counter()
    n_steps = 5 if config.plot else 4
    for name in ("fine_raster", "coarse_raster", "regions"):
        if getattr(config, name) is None:
            raise ValueError(f"configuration is missing '{name}'")

    echo(f"\n[1/{n_steps}] Loading inputs...")
    fine = read_raster(config.fine_raster)
    coarse = read_raster(config.coarse_raster)
    _check_equal_area(fine, config.equal_area_crs, "Fine")
    _check_equal_area(coarse, config.equal_area_crs, "Coarse")
    regions = read_polygons(
        config.regions,
        id_column=config.region_id_column,
        allow_list=config.region_allow_list,
        crs=config.equal_area_crs,
    )
    domain = (read_polygons(config.domain, crs=config.equal_area_crs)
              if config.domain is not None else regions)
    protection_sets = {
        vintage.name: _load_vintage(vintage, config.equal_area_crs)
        for vintage in config.vintages
    }
    for protection in protection_sets.values():
        check_inputs(fine, regions, protection)
    strata = build_strata(config.depth_cuts)
    echo(f"  Fine raster: {fine.shape[1]}x{fine.shape[0]}, "
         f"{int(fine.nodata_mask.sum()):,} no-data cells")
    echo(f"  {regions[config.region_id_column].nunique()} reporting regions, "
         f"{len(strata)} depth strata")

    echo(f"\n[2/{n_steps}] Filling bathymetry gaps...")
    gap_fill = fill_gaps(fine, coarse, domain, strict=config.strict_gaps)
    composite = gap_fill.raster
    composite_path = write_raster(composite, config.composite_path)
    echo(f"  Filled {gap_fill.filled_cells:,} cells")
    if gap_fill.residual is not None:
        echo(f"  WARNING: {gap_fill.residual}")

    echo(f"\n[3/{n_steps}] Aggregating habitat area per region and vintage...")
    summary = RunSummary(composite_path=composite_path, gap_fill=gap_fill)
    for vintage in config.vintages:
        try:
            metrics = run_vintage(
                composite, strata, regions, protection_sets[vintage.name],
                vintage=vintage.name,
                region_id_column=config.region_id_column,
                protection_id_column=vintage.id_column,
                band=config.habitat_band,
                workers=config.workers,
                block_rows=config.block_rows,
            )
        except ValidationFailure as exc:
            summary.failures[vintage.name] = exc
            echo(f"  {vintage.name}: REJECTED ({len(exc.failures)} region(s) failed)")
            continue
        summary.results[vintage.name] = VintageResult(vintage.name, metrics)
        echo(f"  {vintage.name}: {len(metrics)} regions validated")

    echo(f"\n[4/{n_steps}] Writing result tables...")
    for name, result in summary.results.items():
        result.path = write_table(result.table[output_columns(strata)], config.table_path(name))
        echo(f"  Saved: {result.path}")

    if config.plot:
        from .plotting import plot_overview

        echo(f"\n[5/{n_steps}] Creating overview map...")
        coastline = (read_polygons(config.coastline, crs=config.equal_area_crs)
                     if config.coastline is not None else None)
        summary.overview_path = plot_overview(
            composite, regions, protection_sets, config.overview_path, coastline=coastline,
        )
        echo(f"  Map saved: {summary.overview_path}")

    summary.elapsed_seconds = time.perf_counter() - started
    return summary
