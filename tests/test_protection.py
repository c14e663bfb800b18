import numpy as np
import pytest

from fishery_habitat.aggregate import RegionStratumRecord, records_to_frame
from fishery_habitat.errors import ValidationFailure
from fishery_habitat.protection import (
    band_strata,
    compute_protection,
    output_columns,
    protected_fraction,
)
from fishery_habitat.strata import build_strata

STRATA = build_strata([0, -50, -100, -150])


def _record(region_id, totals, protected):
    return RegionStratumRecord(
        region_id=region_id,
        total_area=float(sum(totals)),
        stratum_areas=tuple(totals),
        protected_area=float(sum(protected)),
        protected_stratum_areas=tuple(protected),
        n_samples=100,
        n_protected_samples=0,
    )


def _table(*records):
    return records_to_frame(records, STRATA)


def test_fraction_uses_only_the_habitat_band():
    table = _table(_record(1, [5.0, 4.0, 6.0, 3.0, 2.0], [5.0, 1.0, 3.0, 3.0, 2.0]))

    fraction = protected_fraction(table, STRATA)

    # band = 0_50m and 50_100m: (1 + 3) / (4 + 6)
    assert fraction.loc[1] == pytest.approx(0.4)


def test_empty_band_gives_zero_fraction():
    table = _table(_record(1, [5.0, 0.0, 0.0, 3.0, 2.0], [5.0, 0.0, 0.0, 0.0, 0.0]))
    assert protected_fraction(table, STRATA).loc[1] == 0.0


def test_unprotected_and_fully_protected_regions():
    totals = [0.0, 0.4, 0.6, 0.0, 0.0]
    table = _table(_record(1, totals, [0.0] * 5), _record(2, totals, totals))

    metrics = compute_protection(table, STRATA, vintage="current")

    assert metrics.loc[1, "protected_fraction"] == 0.0
    assert metrics.loc[2, "protected_fraction"] == pytest.approx(1.0)


def test_zero_sample_region_passes_validation():
    table = _table(_record(9, [0.0] * 5, [0.0] * 5))
    metrics = compute_protection(table, STRATA, vintage="legacy")
    assert metrics.loc[9, "protected_fraction"] == 0.0


def test_every_failing_region_is_reported():
    table = _table(
        _record(3, [1.0, 1.0, 1.0, 1.0, 1.0], [0.0, 2.0, 0.0, 0.0, 0.0]),
        _record(5, [1.0, 1.0, 1.0, 1.0, 1.0], [0.0, 0.5, 0.5, 0.0, 0.0]),
        _record(7, [1.0, 1.0, 1.0, 1.0, 1.0], [0.0, 0.0, 3.0, 0.0, 0.0]),
    )

    with pytest.raises(ValidationFailure) as excinfo:
        compute_protection(table, STRATA, vintage="legacy")

    failure = excinfo.value
    assert failure.vintage == "legacy"
    assert set(failure.failures) == {3, 7}
    assert any("exceeds total" in reason for reason in failure.failures[3])
    assert any("outside [0, 1]" in reason for reason in failure.failures[7])
    assert "3, 7" in str(failure)


def test_failures_with_mixed_id_types_are_reported():
    bad = [0.0, 2.0, 0.0, 0.0, 0.0]
    totals = [1.0] * 5
    table = _table(_record(10, totals, bad), _record("A7", totals, bad), _record("2", totals, bad))

    with pytest.raises(ValidationFailure) as excinfo:
        compute_protection(table, STRATA, vintage="legacy")

    assert set(excinfo.value.failures) == {10, "A7", "2"}
    assert str(excinfo.value).endswith(": 2, 10, A7")


def test_stratum_sum_mismatch_is_rejected():
    table = _table(_record(1, [0.0, 0.4, 0.6, 0.0, 0.0], [0.0] * 5))
    table.loc[1, "total_area"] = 2.0

    with pytest.raises(ValidationFailure) as excinfo:
        compute_protection(table, STRATA)
    assert "sum to" in excinfo.value.failures[1][0]


def test_compute_protection_leaves_input_untouched():
    table = _table(_record(1, [0.0, 0.4, 0.6, 0.0, 0.0], [0.0, 0.1, 0.1, 0.0, 0.0]))

    metrics = compute_protection(table, STRATA)

    assert "protected_fraction" not in table.columns
    assert list(metrics[output_columns(STRATA)].columns)[-1] == "protected_fraction"


def test_fraction_is_bounded_for_random_valid_tables():
    rng = np.random.default_rng(11)
    records = []
    for region_id in range(1, 21):
        totals = rng.uniform(0, 10, len(STRATA))
        protected = totals * rng.uniform(0, 1, len(STRATA))
        records.append(_record(region_id, totals, protected))

    metrics = compute_protection(_table(*records), STRATA)

    assert metrics["protected_fraction"].between(0.0, 1.0).all()


def test_band_selecting_nothing_is_an_error():
    with pytest.raises(ValueError):
        band_strata(STRATA, (3, 2))
