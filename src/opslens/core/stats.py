"""Duration statistics: nearest-rank percentiles and rounded averages."""

import math
from collections.abc import Sequence
from dataclasses import dataclass


def percentile(samples: Sequence[int], p: float) -> int:
    """Return the nearest-rank percentile of the samples.

    Selects ``sorted(samples)[ceil(p / 100 * n) - 1]``, clamped to index 0.
    The rank uses the ceiling, never rounding, so the result is always one
    of the input samples.

    Args:
        samples: Non-negative durations. Need not be sorted.
        p: Percentile in [0, 100].

    Returns:
        The selected sample, or 0 for an empty collection.

    Raises:
        ValueError: If p is outside [0, 100].
    """
    if not 0 <= p <= 100:
        raise ValueError(f"percentile must be within [0, 100], got {p}")
    if not samples:
        return 0
    return _ranked(sorted(samples), p)


def _ranked(ordered: Sequence[int], p: float) -> int:
    index = math.ceil(p / 100 * len(ordered)) - 1
    return ordered[max(0, index)]


def average(samples: Sequence[int]) -> int:
    """Arithmetic mean rounded to the nearest integer, halves rounded up.

    Returns 0 for an empty collection.
    """
    if not samples:
        return 0
    return math.floor(sum(samples) / len(samples) + 0.5)


def rate(part: int, whole: int) -> float:
    """Return ``part`` as a percentage of ``whole``; 0.0 when whole is 0."""
    if whole == 0:
        return 0.0
    return part / whole * 100


def whole_percent(value: float) -> int:
    """Round a percentage to a whole number, halves rounded up."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class DurationSummary:
    """Reduced view of a collection of durations."""

    count: int = 0
    p50: int = 0
    p95: int = 0
    p99: int = 0
    avg: int = 0
    min: int = 0
    max: int = 0


def summarize(samples: Sequence[int]) -> DurationSummary:
    """Compute count, p50/p95/p99, average, min and max with one sort."""
    if not samples:
        return DurationSummary()
    ordered = sorted(samples)
    return DurationSummary(
        count=len(ordered),
        p50=_ranked(ordered, 50),
        p95=_ranked(ordered, 95),
        p99=_ranked(ordered, 99),
        avg=average(ordered),
        min=ordered[0],
        max=ordered[-1],
    )
