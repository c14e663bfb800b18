"""
Habitat protection metrics
==========================
Protected fraction of the adult habitat band per region, with a validation
gate that rejects a vintage's whole table if any region breaks an invariant.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import List, Sequence

import numpy as np
import pandas as pd

from .config import HABITAT_BAND
from .errors import ValidationFailure
from .log import get_logger
from .strata import DepthStratum, band_slice

LOGGER = get_logger(__name__)

# Relative tolerance for area sums against their totals
SUM_RTOL = 1e-6
# Absolute slack for protected <= total comparisons (km2)
AREA_ATOL = 1e-9


def band_strata(strata: Sequence[DepthStratum], band=HABITAT_BAND) -> List[DepthStratum]:
    selected = list(strata)[band_slice(band)]
    if not selected:
        raise ValueError(f"habitat band {band} selects no strata out of {len(strata)}")
    return selected


def output_columns(strata: Sequence[DepthStratum]) -> List[str]:
    """Columns persisted per vintage, in order."""

    return (
        ["total_area"]
        + [f"area_{s.label}" for s in strata]
        + ["protected_area"]
        + [f"protected_{s.label}" for s in strata]
        + ["protected_fraction"]
    )


def protected_fraction(table: pd.DataFrame, strata: Sequence[DepthStratum], band=HABITAT_BAND) -> pd.Series:
    """Protected over total area summed across the band; 0 where the band is empty."""

    selected = band_strata(strata, band)
    total = table[[f"area_{s.label}" for s in selected]].sum(axis=1)
    protected = table[[f"protected_{s.label}" for s in selected]].sum(axis=1)
    fraction = np.divide(
        protected.to_numpy(dtype=np.float64),
        total.to_numpy(dtype=np.float64),
        out=np.zeros(len(table), dtype=np.float64),
        where=total.to_numpy() > 0,
    )
    return pd.Series(fraction, index=table.index, name="protected_fraction")


def validate_protection(metrics: pd.DataFrame, strata: Sequence[DepthStratum], vintage: str = "") -> None:
    """Raise :class:`ValidationFailure` listing every region that breaks an invariant."""

    failures = defaultdict(list)
    for region_id, row in metrics.iterrows():
        fraction = row["protected_fraction"]
        if not (0.0 <= fraction <= 1.0):
            failures[region_id].append(f"protected_fraction {fraction!r} outside [0, 1]")

        total_sum = 0.0
        protected_sum = 0.0
        for stratum in strata:
            total = row[f"area_{stratum.label}"]
            protected = row[f"protected_{stratum.label}"]
            total_sum += total
            protected_sum += protected
            if protected > total + AREA_ATOL:
                failures[region_id].append(
                    f"protected area {protected:.6g} exceeds total {total:.6g} in stratum {stratum.label}"
                )

        if not math.isclose(total_sum, row["total_area"], rel_tol=SUM_RTOL, abs_tol=AREA_ATOL):
            failures[region_id].append(
                f"stratum areas sum to {total_sum:.6g}, total area is {row['total_area']:.6g}"
            )
        if not math.isclose(protected_sum, row["protected_area"], rel_tol=SUM_RTOL, abs_tol=AREA_ATOL):
            failures[region_id].append(
                f"protected strata sum to {protected_sum:.6g}, protected area is {row['protected_area']:.6g}"
            )

    if failures:
        for region_id, reasons in failures.items():
            LOGGER.error("vintage %s region %s: %s", vintage, region_id, "; ".join(reasons))
        raise ValidationFailure(vintage, failures)


def compute_protection(
    table: pd.DataFrame,
    strata: Sequence[DepthStratum],
    band=HABITAT_BAND,
    vintage: str = "",
) -> pd.DataFrame:
    """Add ``protected_fraction`` to the stratum table and validate it.

    Nothing is returned unless every region passes.
    """

    metrics = table.copy()
    metrics["protected_fraction"] = protected_fraction(metrics, strata, band)
    validate_protection(metrics, strata, vintage)
    LOGGER.info(
        "vintage %s: %d region(s) validated, mean protected fraction %.4f",
        vintage, len(metrics),
        float(metrics["protected_fraction"].mean()) if len(metrics) else 0.0,
    )
    return metrics
