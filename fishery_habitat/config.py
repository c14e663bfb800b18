"""
Run configuration
=================
Defaults for the habitat protection analysis plus a YAML/JSON loader that
overrides them per run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

# ============================================================================
# CONFIGURATION
# ============================================================================
# Depth cut points in metres, NEGATIVE below sea level, shallow to deep.
# Strata are (lower, upper] between consecutive cuts, plus one open stratum
# above the first cut and one below the last.
DEPTH_CUTS = (0, -50, -100, -150, -200, -250, -300, -350, -400, -500)

# Adult habitat band as a slice over the stratum list: drop the stratum
# above the first cut and the two deepest strata.
HABITAT_BAND = (1, -2)

# Equal-area CRS for every area computation (ETRS89-LAEA)
EQUAL_AREA_CRS = "EPSG:3035"

NODATA_VALUE = -9999.0

REGION_ID_COLUMN = "Id"
REGION_ALLOW_LIST = ()

LEGACY_ID_COLUMN = "SITE_ID"
CURRENT_ID_COLUMN = "WDPAID"


def region_sort_key(region_id):
    """Numeric order for ids; anything non-numeric sorts after, as text."""

    try:
        return (0, float(region_id), "")
    except (TypeError, ValueError):
        return (1, 0.0, str(region_id))


@dataclass
class VintageConfig:
    """One protected-area layout and the attribute naming its polygons."""

    name: str
    path: Optional[Path] = None
    id_column: Optional[str] = None


@dataclass
class AnalysisConfig:
    """Everything a run needs: input paths, depth schedule and output dir."""

    fine_raster: Optional[Path] = None
    coarse_raster: Optional[Path] = None
    domain: Optional[Path] = None
    regions: Optional[Path] = None
    coastline: Optional[Path] = None
    output_dir: Path = Path("output")
    region_id_column: str = REGION_ID_COLUMN
    region_allow_list: Tuple[Any, ...] = REGION_ALLOW_LIST
    depth_cuts: Tuple[float, ...] = DEPTH_CUTS
    habitat_band: Tuple[Optional[int], Optional[int]] = HABITAT_BAND
    equal_area_crs: str = EQUAL_AREA_CRS
    strict_gaps: bool = False
    workers: int = 1
    block_rows: int = 512
    plot: bool = True
    vintages: Tuple[VintageConfig, ...] = field(
        default_factory=lambda: (
            VintageConfig("legacy", id_column=LEGACY_ID_COLUMN),
            VintageConfig("current", id_column=CURRENT_ID_COLUMN),
        )
    )

    @property
    def composite_path(self) -> Path:
        return self.output_dir / "bathymetry_composite.tif"

    @property
    def overview_path(self) -> Path:
        return self.output_dir / "habitat_protection_overview.png"

    def table_path(self, vintage: str) -> Path:
        return self.output_dir / f"habitat_protection_{vintage}.csv"

    def resolve_relative_paths(self, base_dir: Path) -> None:
        """Anchor relative paths at ``base_dir`` (the config file's folder)."""

        for name in ("fine_raster", "coarse_raster", "domain", "regions", "coastline", "output_dir"):
            value = getattr(self, name)
            if value is not None and not value.is_absolute():
                setattr(self, name, base_dir / value)
        for vintage in self.vintages:
            if vintage.path is not None and not vintage.path.is_absolute():
                vintage.path = base_dir / vintage.path


_PATH_KEYS = ("fine_raster", "coarse_raster", "domain", "regions", "coastline", "output_dir")
_KNOWN_KEYS = set(_PATH_KEYS) | {
    "region_id_column",
    "region_allow_list",
    "depth_cuts",
    "habitat_band",
    "equal_area_crs",
    "strict_gaps",
    "workers",
    "block_rows",
    "plot",
    "vintages",
}


class ConfigLoader:
    """Parse YAML or JSON run configuration into :class:`AnalysisConfig`."""

    def load(self, path: Path | str) -> AnalysisConfig:
        config_path = Path(path).resolve()
        payload = self._load_payload(config_path)
        config = self._build_config(payload)
        config.resolve_relative_paths(config_path.parent)
        return config

    def _load_payload(self, path: Path) -> Dict[str, Any]:
        suffix = path.suffix.lower()
        with path.open("r", encoding="utf-8") as handle:
            if suffix in {".yaml", ".yml"}:
                payload = yaml.safe_load(handle) or {}
            elif suffix == ".json":
                payload = json.load(handle) or {}
            else:
                raise ValueError(f"Unsupported configuration format: {suffix}")
        if not isinstance(payload, dict):
            raise ValueError("configuration root must be a mapping")
        return payload

    def _build_config(self, payload: Dict[str, Any]) -> AnalysisConfig:
        unknown = set(payload) - _KNOWN_KEYS
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        data: Dict[str, Any] = {}
        for key in _PATH_KEYS:
            if payload.get(key) is not None:
                data[key] = Path(payload[key])
        for key in ("region_id_column", "equal_area_crs"):
            if key in payload:
                data[key] = str(payload[key])
        for key in ("strict_gaps", "plot"):
            if key in payload:
                data[key] = bool(payload[key])
        for key in ("workers", "block_rows"):
            if key in payload:
                data[key] = int(payload[key])
        if "region_allow_list" in payload:
            data["region_allow_list"] = tuple(payload["region_allow_list"] or ())
        if "depth_cuts" in payload:
            data["depth_cuts"] = tuple(float(cut) for cut in payload["depth_cuts"])
        if "habitat_band" in payload:
            band = payload["habitat_band"]
            if not isinstance(band, (list, tuple)) or len(band) != 2:
                raise ValueError("habitat_band must be a [start, stop] pair")
            data["habitat_band"] = tuple(None if b is None else int(b) for b in band)
        if "vintages" in payload:
            data["vintages"] = self._build_vintages(payload["vintages"])
        return AnalysisConfig(**data)

    def _build_vintages(self, section: Any) -> Tuple[VintageConfig, ...]:
        if not isinstance(section, dict):
            raise ValueError("vintages section must be a mapping of name -> settings")
        vintages = []
        for name, settings in section.items():
            settings = settings or {}
            if not isinstance(settings, dict):
                raise ValueError(f"vintages.{name} must be a mapping")
            path = settings.get("path")
            vintages.append(
                VintageConfig(
                    name=str(name),
                    path=Path(path) if path is not None else None,
                    id_column=settings.get("id_column"),
                )
            )
        return tuple(vintages)


def load_config(path: Path | str) -> AnalysisConfig:
    """Shortcut for ``ConfigLoader().load(path)``."""

    return ConfigLoader().load(path)
