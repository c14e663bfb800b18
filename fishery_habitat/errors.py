"""Error types raised by the habitat protection analysis."""

from .config import region_sort_key


class HabitatAnalysisError(Exception):
    """Base class for analysis errors."""


class InputAlignmentError(HabitatAnalysisError):
    """CRS mismatch or non-overlapping extents among the inputs."""


class ResidualGapError(HabitatAnalysisError):
    """No-data cells left inside the domain of interest after gap filling.

    Non-fatal by default: the gap filler logs it and attaches it to its
    result. Affected cells stay NaN and drop out of downstream sampling.
    """

    def __init__(self, count):
        self.count = int(count)
        super().__init__(
            f"{self.count:,} no-data cell(s) remain inside the domain of interest"
        )


class ValidationFailure(HabitatAnalysisError):
    """A vintage's result table broke a protection invariant.

    ``failures`` maps region id to a list of reasons. Every failing region
    is listed, not only the first one found.
    """

    def __init__(self, vintage, failures):
        self.vintage = vintage
        self.failures = dict(failures)
        ids = ", ".join(str(region_id) for region_id in sorted(self.failures, key=region_sort_key))
        super().__init__(
            f"Validation failed for vintage '{vintage}' "
            f"({len(self.failures)} region(s)): {ids}"
        )
