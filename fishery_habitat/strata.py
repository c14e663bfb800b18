"""
Depth strata
============
Half-open depth intervals built from a decreasing list of cut points, and a
streaming per-stratum cell counter.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np


@dataclass(frozen=True)
class DepthStratum:
    """Depth interval ``(lower, upper]``; depths are negative below sea level."""

    upper: float
    lower: float
    label: str

    def contains(self, value) -> bool:
        return self.lower < value <= self.upper


def _depth_label(value):
    # -0.0 + 0.0 == 0.0, keeps "-0" out of labels
    return f"{-value + 0.0:g}"


def build_strata(cuts: Sequence[float]) -> List[DepthStratum]:
    """Partition the real line at ``cuts`` (strictly decreasing).

    Besides one stratum per pair of consecutive cuts, an open stratum sits
    above the first cut and another below the last, so every finite value
    lands in exactly one stratum.
    """

    cuts = [float(cut) for cut in cuts]
    if not cuts:
        raise ValueError("at least one depth cut is required")
    if not all(math.isfinite(cut) for cut in cuts):
        raise ValueError(f"depth cuts must be finite: {cuts}")
    if any(shallow <= deep for shallow, deep in zip(cuts, cuts[1:])):
        raise ValueError(f"depth cuts must be strictly decreasing: {cuts}")

    strata = [DepthStratum(math.inf, cuts[0], f"above_{_depth_label(cuts[0])}m")]
    for shallow, deep in zip(cuts, cuts[1:]):
        strata.append(
            DepthStratum(shallow, deep, f"{_depth_label(shallow)}_{_depth_label(deep)}m")
        )
    strata.append(DepthStratum(cuts[-1], -math.inf, f"below_{_depth_label(cuts[-1])}m"))
    return strata


def stratum_index(values, strata: Sequence[DepthStratum]) -> np.ndarray:
    """Index into ``strata`` for each value (finite values only)."""

    ascending = np.array([stratum.lower for stratum in strata[:-1]][::-1], dtype=np.float64)
    below = np.searchsorted(ascending, np.asarray(values, dtype=np.float64), side="left")
    return len(ascending) - below


def band_slice(band) -> slice:
    """``(start, stop)`` pair from config as a slice over the strata list."""

    start, stop = band
    return slice(start, stop)


class StratumCounter:
    """Running cell counts per stratum.

    Values are fed in blocks so a large region never needs its full sample
    in memory. NaN and infinite values are ignored.
    """

    def __init__(self, strata: Sequence[DepthStratum]):
        self.strata = list(strata)
        self.counts = np.zeros(len(self.strata), dtype=np.int64)

    def update(self, values) -> None:
        values = np.asarray(values, dtype=np.float64).ravel()
        values = values[np.isfinite(values)]
        if values.size == 0:
            return
        self.counts += np.bincount(
            stratum_index(values, self.strata), minlength=len(self.strata)
        )

    @property
    def total(self) -> int:
        return int(self.counts.sum())
