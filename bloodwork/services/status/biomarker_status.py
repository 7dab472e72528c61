"""Classify a reading against an optimal range."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BiomarkerStatus:
    status: str
    severity: Optional[str] = None


UNKNOWN_STATUS = BiomarkerStatus("unknown")


def classify_value(
    value: Optional[float],
    optimal_min: Optional[float],
    optimal_max: Optional[float],
) -> BiomarkerStatus:
    """Bucket a value relative to ``[optimal_min, optimal_max]``.

    Below the range: deficient (severe under 70% of min, moderate under
    85%) or suboptimal. Above it: excess (mild to 120% of max, moderate
    to 150%) then concerning. A missing bound makes that side open.
    """
    if value is None or (optimal_min is None and optimal_max is None):
        return UNKNOWN_STATUS

    if optimal_min is not None:
        if value < optimal_min * 0.7:
            return BiomarkerStatus("deficient", "severe")
        if value < optimal_min * 0.85:
            return BiomarkerStatus("deficient", "moderate")
        if value < optimal_min:
            return BiomarkerStatus("suboptimal", "mild")

    if optimal_max is None or value <= optimal_max:
        return BiomarkerStatus("optimal")
    if value <= optimal_max * 1.2:
        return BiomarkerStatus("excess", "mild")
    if value <= optimal_max * 1.5:
        return BiomarkerStatus("excess", "moderate")
    return BiomarkerStatus("concerning", "severe")
