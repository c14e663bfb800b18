"""Depth-stratified habitat area and MPA protection per fishery reporting region."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = [
    "AnalysisConfig",
    "DepthStratum",
    "GapFillResult",
    "InputAlignmentError",
    "Raster",
    "RegionStratumRecord",
    "ResidualGapError",
    "ValidationFailure",
    "aggregate_regions",
    "build_strata",
    "compute_protection",
    "fill_gaps",
    "load_config",
    "run_analysis",
    "run_vintage",
]

_MODULE_MAP = {
    "AnalysisConfig": ("fishery_habitat.config", "AnalysisConfig"),
    "DepthStratum": ("fishery_habitat.strata", "DepthStratum"),
    "GapFillResult": ("fishery_habitat.gapfill", "GapFillResult"),
    "InputAlignmentError": ("fishery_habitat.errors", "InputAlignmentError"),
    "Raster": ("fishery_habitat.raster", "Raster"),
    "RegionStratumRecord": ("fishery_habitat.aggregate", "RegionStratumRecord"),
    "ResidualGapError": ("fishery_habitat.errors", "ResidualGapError"),
    "ValidationFailure": ("fishery_habitat.errors", "ValidationFailure"),
    "aggregate_regions": ("fishery_habitat.aggregate", "aggregate_regions"),
    "build_strata": ("fishery_habitat.strata", "build_strata"),
    "compute_protection": ("fishery_habitat.protection", "compute_protection"),
    "fill_gaps": ("fishery_habitat.gapfill", "fill_gaps"),
    "load_config": ("fishery_habitat.config", "load_config"),
    "run_analysis": ("fishery_habitat.pipeline", "run_analysis"),
    "run_vintage": ("fishery_habitat.pipeline", "run_vintage"),
}


def __getattr__(name: str) -> Any:
    if name not in _MODULE_MAP:
        raise AttributeError(f"module 'fishery_habitat' has no attribute '{name}'")
    module_name, attr = _MODULE_MAP[name]
    module = importlib.import_module(module_name)
    return getattr(module, attr)
