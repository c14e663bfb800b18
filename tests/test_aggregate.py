import numpy as np
import pytest
from shapely.geometry import box

from conftest import make_raster, polygons
from fishery_habitat.aggregate import (
    aggregate_regions,
    records_to_frame,
    region_sort_key,
    subdivide_regions,
)
from fishery_habitat.errors import InputAlignmentError
from fishery_habitat.strata import build_strata

STRATA = build_strata([0, -50, -100, -150])


def _single(records):
    assert len(records) == 1
    return records[0]


def test_stratum_areas_follow_cell_fractions(banded_raster, square_region, no_protection):
    record = _single(aggregate_regions(
        banded_raster, STRATA, square_region, no_protection, region_id_column="Id",
    ))

    assert record.total_area == pytest.approx(1.0)
    assert record.n_samples == 100
    assert record.stratum_areas == pytest.approx((0.0, 0.4, 0.6, 0.0, 0.0))
    assert sum(record.stratum_areas) == pytest.approx(record.total_area)


def test_region_without_protection_has_zero_protected_area(banded_raster, square_region):
    far_away = polygons(box(50_000, 50_000, 51_000, 51_000), column="SITE_ID")

    record = _single(aggregate_regions(
        banded_raster, STRATA, square_region, far_away,
        region_id_column="Id", protection_id_column="SITE_ID",
    ))

    assert record.protected_area == 0.0
    assert record.protected_stratum_areas == (0.0,) * len(STRATA)


def test_fully_protected_region_matches_totals(banded_raster, square_region):
    cover = polygons(box(-500, -500, 1500, 1500), column="SITE_ID")

    record = _single(aggregate_regions(
        banded_raster, STRATA, square_region, cover,
        region_id_column="Id", protection_id_column="SITE_ID",
    ))

    assert record.protected_stratum_areas == pytest.approx(record.stratum_areas)
    assert record.protected_area == pytest.approx(record.total_area)


def test_overlapping_protection_counts_cells_once(banded_raster, square_region):
    overlapping = polygons(box(0, 0, 500, 1000), box(0, 500, 500, 1000), column="SITE_ID")

    record = _single(aggregate_regions(
        banded_raster, STRATA, square_region, overlapping,
        region_id_column="Id", protection_id_column="SITE_ID",
    ))

    assert record.n_protected_samples == 50
    assert record.protected_stratum_areas == pytest.approx((0.0, 0.2, 0.3, 0.0, 0.0))
    for protected, total in zip(record.protected_stratum_areas, record.stratum_areas):
        assert protected <= total


def test_region_without_valid_samples_is_all_zero(no_protection):
    raster = make_raster(np.full((10, 10), np.nan))
    regions = polygons(box(0, 0, 1000, 1000))

    record = _single(aggregate_regions(
        raster, STRATA, regions, no_protection, region_id_column="Id",
    ))

    assert record.n_samples == 0
    assert record.total_area == 0.0
    assert record.stratum_areas == (0.0,) * len(STRATA)
    assert record.protected_area == 0.0


def test_region_outside_raster_is_all_zero(banded_raster, no_protection):
    regions = polygons(box(0, 0, 1000, 1000), box(5000, 0, 6000, 1000))

    records = aggregate_regions(banded_raster, STRATA, regions, no_protection, region_id_column="Id")

    assert [r.region_id for r in records] == [1, 2]
    assert records[1].n_samples == 0
    assert records[1].total_area == 0.0


def test_multipart_region_is_one_record(banded_raster, no_protection):
    regions = polygons(box(0, 0, 500, 1000), box(500, 0, 1000, 1000), ids=[4, 4])

    record = _single(aggregate_regions(
        banded_raster, STRATA, regions, no_protection, region_id_column="Id",
    ))

    assert record.region_id == 4
    assert record.total_area == pytest.approx(1.0)
    assert record.n_samples == 100


def test_records_are_sorted_by_numeric_id(banded_raster, no_protection):
    regions = polygons(
        box(0, 0, 300, 300), box(300, 0, 600, 300), box(600, 0, 900, 300),
        ids=["10", "2", "1"],
    )

    records = aggregate_regions(banded_raster, STRATA, regions, no_protection, region_id_column="Id")

    assert [r.region_id for r in records] == ["1", "2", "10"]


def test_threaded_and_blocked_runs_agree(banded_raster):
    regions = polygons(*(box(x, 0, x + 250, 1000) for x in range(0, 1000, 250)))
    protection = polygons(box(100, 100, 700, 700), column="SITE_ID")

    serial = aggregate_regions(
        banded_raster, STRATA, regions, protection,
        region_id_column="Id", protection_id_column="SITE_ID",
    )
    threaded = aggregate_regions(
        banded_raster, STRATA, regions, protection,
        region_id_column="Id", protection_id_column="SITE_ID",
        workers=3, block_rows=3,
    )

    assert serial == threaded


def test_invariants_hold_for_every_region(banded_raster):
    regions = polygons(box(0, 0, 600, 600), box(400, 400, 1000, 1000), box(0, 600, 400, 1000))
    protection = polygons(box(200, 200, 800, 800), box(0, 700, 300, 1000), column="SITE_ID")

    records = aggregate_regions(
        banded_raster, STRATA, regions, protection,
        region_id_column="Id", protection_id_column="SITE_ID",
    )

    for record in records:
        assert sum(record.stratum_areas) == pytest.approx(record.total_area)
        assert sum(record.protected_stratum_areas) == pytest.approx(record.protected_area)
        for protected, total in zip(record.protected_stratum_areas, record.stratum_areas):
            assert protected <= total


def test_subdivide_tags_protected_and_open_parts(square_region):
    protection = polygons(box(0, 0, 500, 1000), column="SITE_ID", ids=[77])

    parts = subdivide_regions(
        square_region, protection, region_id_column="Id", protection_id_column="SITE_ID",
    )

    tags = sorted(parts["protection_id"].tolist(), key=lambda tag: tag is None)
    assert tags[0] == 77
    assert tags[1] is None
    assert set(parts["region_id"]) == {1}
    assert parts.geometry.area.sum() == pytest.approx(1e6)


def test_subdivide_uses_row_index_without_id_column(square_region):
    protection = polygons(box(0, 0, 500, 1000), column="name", ids=["reef"])

    parts = subdivide_regions(square_region, protection, region_id_column="Id")

    assert 0 in set(parts["protection_id"].dropna())


def test_unprojected_regions_are_rejected(banded_raster, no_protection):
    regions = polygons(box(0, 0, 1, 1), crs="EPSG:4326")
    with pytest.raises(InputAlignmentError):
        aggregate_regions(banded_raster, STRATA, regions, no_protection, region_id_column="Id")


def test_protection_crs_must_match(banded_raster, square_region):
    protection = polygons(box(0, 0, 500, 500), column="SITE_ID", crs="EPSG:3857")
    with pytest.raises(InputAlignmentError):
        aggregate_regions(banded_raster, STRATA, square_region, protection, region_id_column="Id")


def test_records_to_frame_layout(banded_raster, square_region, no_protection):
    records = aggregate_regions(banded_raster, STRATA, square_region, no_protection, region_id_column="Id")

    frame = records_to_frame(records, STRATA)

    assert frame.index.name == "region_id"
    assert list(frame.columns[:3]) == ["total_area", "area_above_0m", "area_0_50m"]
    assert "protected_50_100m" in frame.columns
    assert frame.loc[1, "area_50_100m"] == pytest.approx(0.6)


def test_region_sort_key_orders_numbers_before_text():
    ids = ["b", 3, "12", "a", 2.5]
    assert sorted(ids, key=region_sort_key) == [2.5, 3, "12", "a", "b"]
