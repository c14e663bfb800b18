import geopandas as gpd
import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import box

from fishery_habitat.raster import Raster

EPSG = "EPSG:3035"


def make_raster(values, *, west=0.0, north=1000.0, cell=100.0, crs=EPSG):
    return Raster(np.asarray(values, dtype=np.float64),
                  from_origin(west, north, cell, cell), CRS.from_string(crs))


def polygons(*geoms, ids=None, column="Id", crs=EPSG):
    ids = list(range(1, len(geoms) + 1)) if ids is None else list(ids)
    return gpd.GeoDataFrame({column: ids}, geometry=list(geoms), crs=crs)


@pytest.fixture()
def banded_raster():
    """10x10 cells of 100 m: top 4 rows at -25 m, bottom 6 rows at -75 m."""

    values = np.full((10, 10), -75.0)
    values[:4, :] = -25.0
    return make_raster(values)


@pytest.fixture()
def square_region():
    return polygons(box(0, 0, 1000, 1000))


@pytest.fixture()
def no_protection():
    return gpd.GeoDataFrame({"SITE_ID": []}, geometry=[], crs=EPSG)


@pytest.fixture()
def analysis_inputs(tmp_path):
    """Input files for a full run: a banded fine grid with one hole, a
    coarse grid covering it, one region and two MPA layouts."""

    from fishery_habitat.datasets import write_raster

    values = np.full((10, 10), -75.0)
    values[:4, :] = -25.0
    values[5, 5] = np.nan
    data = tmp_path / "data"
    paths = {
        "fine_raster": write_raster(make_raster(values), data / "fine.tif"),
        "coarse_raster": write_raster(
            make_raster(np.full((5, 5), -75.0), cell=200.0), data / "coarse.tif"
        ),
        "regions": data / "regions.gpkg",
        "legacy": data / "legacy.gpkg",
        "current": data / "current.gpkg",
    }
    polygons(box(0, 0, 1000, 1000)).to_file(paths["regions"])
    polygons(box(0, 0, 500, 1000), column="SITE_ID", ids=[101]).to_file(paths["legacy"])
    polygons(box(0, 0, 1000, 1000), column="WDPAID", ids=[555]).to_file(paths["current"])
    return paths


def write_config(path, inputs, **overrides):
    """YAML run configuration pointing at ``inputs``."""

    import yaml

    payload = {
        "fine_raster": str(inputs["fine_raster"]),
        "coarse_raster": str(inputs["coarse_raster"]),
        "regions": str(inputs["regions"]),
        "output_dir": str(path.parent / "output"),
        "vintages": {
            "legacy": {"path": str(inputs["legacy"]), "id_column": "SITE_ID"},
            "current": {"path": str(inputs["current"]), "id_column": "WDPAID"},
        },
    }
    payload.update(overrides)
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path
