"""Single-pass aggregation of events into time buckets and dimension groups.

One generic aggregator serves every reporting surface. What differs between
request, query and endpoint views (identity tuple, error and slow
classification, sub-dimensions) is carried by an ``EventProfile``.
"""

from collections import Counter, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from operator import attrgetter
from typing import Any

from opslens.core.buckets import HOUR, bucket_key, bucket_keys
from opslens.core.models import TelemetryEvent
from opslens.core.stats import DurationSummary, rate, summarize

DEFAULT_RECENT_PER_GROUP = 10


@dataclass(frozen=True)
class EventProfile:
    """How to identify and classify events for one reporting surface.

    Attributes:
        name: Short label for logs.
        fields: Names of the identity tuple components, in order.
        identity: Extracts the dimension key from an event.
        is_error: Classifies an event as failed.
        is_slow: Classifies an event as slow.
        sub_dimension: Optional extractor for a secondary value collected
            per group (e.g. HTTP methods seen for a route).
    """

    name: str
    fields: tuple[str, ...]
    identity: Callable[[Any], tuple[str, ...]]
    is_error: Callable[[Any], bool] = attrgetter("failed")
    is_slow: Callable[[Any], bool] = attrgetter("slow")
    sub_dimension: Callable[[Any], str] | None = None


@dataclass
class _Accumulator:
    count: int = 0
    errors: int = 0
    slow: int = 0
    durations: list[int] = field(default_factory=list)

    def add(self, duration_ms: int, is_error: bool, is_slow: bool) -> None:
        self.count += 1
        if is_error:
            self.errors += 1
        if is_slow:
            self.slow += 1
        self.durations.append(duration_ms)


@dataclass
class Bucket(_Accumulator):
    """Events falling into one fixed-width interval."""

    key: float = 0.0


@dataclass
class DimensionGroup(_Accumulator):
    """Events sharing one identity tuple."""

    key: tuple[str, ...] = ()
    sub_dimensions: set[str] = field(default_factory=set)
    last_hour: int = 0
    recent: deque[TelemetryEvent] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_RECENT_PER_GROUP)
    )


@dataclass(frozen=True)
class TimeSeriesPoint:
    """Reduced view of one bucket."""

    timestamp: float
    count: int
    errors: int
    slow: int
    error_rate: float
    durations: DurationSummary


@dataclass(frozen=True)
class GroupSummary:
    """Reduced view of one dimension group."""

    key: tuple[str, ...]
    labels: dict[str, str]
    count: int
    errors: int
    slow: int
    error_rate: float
    slow_rate: float
    durations: DurationSummary
    sub_dimensions: tuple[str, ...] = ()
    last_hour_count: int = 0
    recent: tuple[TelemetryEvent, ...] = ()


@dataclass(frozen=True)
class Totals:
    """Reduced view of every aggregated event."""

    count: int
    errors: int
    slow: int
    error_rate: float
    slow_rate: float
    durations: DurationSummary


@dataclass
class Aggregation:
    """Result of one aggregation pass. Local to a single query."""

    profile: EventProfile
    buckets: dict[float, Bucket]
    groups: dict[tuple[str, ...], DimensionGroup]
    totals: _Accumulator

    def time_series(self) -> list[TimeSeriesPoint]:
        """Return one point per bucket, in time order, including empty ones."""
        return [
            TimeSeriesPoint(
                timestamp=b.key,
                count=b.count,
                errors=b.errors,
                slow=b.slow,
                error_rate=rate(b.errors, b.count),
                durations=summarize(b.durations),
            )
            for b in self.buckets.values()
        ]

    def group_summaries(self) -> list[GroupSummary]:
        """Return one summary per group, in first-seen order."""
        return [self._summarize_group(g) for g in self.groups.values()]

    def _summarize_group(self, group: DimensionGroup) -> GroupSummary:
        return GroupSummary(
            key=group.key,
            labels=dict(zip(self.profile.fields, group.key)),
            count=group.count,
            errors=group.errors,
            slow=group.slow,
            error_rate=rate(group.errors, group.count),
            slow_rate=rate(group.slow, group.count),
            durations=summarize(group.durations),
            sub_dimensions=tuple(sorted(group.sub_dimensions)),
            last_hour_count=group.last_hour,
            recent=tuple(reversed(group.recent)),
        )

    def totals_summary(self) -> Totals:
        t = self.totals
        return Totals(
            count=t.count,
            errors=t.errors,
            slow=t.slow,
            error_rate=rate(t.errors, t.count),
            slow_rate=rate(t.slow, t.count),
            durations=summarize(t.durations),
        )


def aggregate(
    events: Iterable[TelemetryEvent],
    profile: EventProfile,
    window_start: float,
    now: float,
    width: int,
    recent_per_group: int = DEFAULT_RECENT_PER_GROUP,
) -> Aggregation:
    """Reduce events into buckets, dimension groups and totals in one pass.

    Every bucket in [window_start, now] exists even when empty. An event
    whose bucket falls outside that range still counts toward its group and
    the totals, but toward no bucket.

    Args:
        events: Events ordered by timestamp ascending.
        profile: Identity and classification functions.
        window_start: Start of the requested window (Unix seconds).
        now: End of the requested window (Unix seconds).
        width: Bucket width in seconds.
        recent_per_group: How many newest events each group retains.
    """
    buckets = {key: Bucket(key=key) for key in bucket_keys(window_start, now, width)}
    groups: dict[tuple[str, ...], DimensionGroup] = {}
    totals = _Accumulator()
    hour_ago = now - HOUR

    for event in events:
        is_error = profile.is_error(event)
        is_slow = profile.is_slow(event)
        totals.add(event.duration_ms, is_error, is_slow)

        bucket = buckets.get(bucket_key(event.timestamp, width))
        if bucket is not None:
            bucket.add(event.duration_ms, is_error, is_slow)

        key = profile.identity(event)
        group = groups.get(key)
        if group is None:
            group = DimensionGroup(key=key, recent=deque(maxlen=recent_per_group))
            groups[key] = group
        group.add(event.duration_ms, is_error, is_slow)
        if profile.sub_dimension is not None:
            group.sub_dimensions.add(profile.sub_dimension(event))
        if event.timestamp > hour_ago:
            group.last_hour += 1
        group.recent.append(event)

    return Aggregation(profile=profile, buckets=buckets, groups=groups, totals=totals)


def top_by_volume(summaries: Iterable[GroupSummary], limit: int) -> list[GroupSummary]:
    """Groups with the most events first, truncated to ``limit``."""
    return sorted(summaries, key=lambda s: s.count, reverse=True)[:limit]


def top_by_latency(
    summaries: Iterable[GroupSummary], limit: int, min_samples: int
) -> list[GroupSummary]:
    """Groups with the highest p95 first, truncated to ``limit``.

    Groups with fewer than ``min_samples`` events never appear, whatever
    their p95.
    """
    eligible = [s for s in summaries if s.count >= min_samples]
    return sorted(eligible, key=lambda s: s.durations.p95, reverse=True)[:limit]


@dataclass(frozen=True)
class StatusCounts:
    """Error responses split by status class."""

    status_404: int = 0
    status_500: int = 0
    other_4xx: int = 0
    other_5xx: int = 0

    @property
    def total(self) -> int:
        return self.status_404 + self.status_500 + self.other_4xx + self.other_5xx

    @property
    def server_errors(self) -> int:
        """Responses with status >= 500."""
        return self.status_500 + self.other_5xx

    @classmethod
    def from_counter(cls, counts: Counter[int]) -> "StatusCounts":
        other_4xx = sum(
            n for status, n in counts.items() if 400 <= status < 500 and status != 404
        )
        other_5xx = sum(n for status, n in counts.items() if status >= 500 and status != 500)
        return cls(
            status_404=counts.get(404, 0),
            status_500=counts.get(500, 0),
            other_4xx=other_4xx,
            other_5xx=other_5xx,
        )


@dataclass(frozen=True)
class StatusBreakdown:
    """Per-bucket and overall error counts by status class."""

    time_series: list[tuple[float, StatusCounts]]
    totals: StatusCounts


def status_breakdown(
    status_events: Iterable[tuple[float, int]],
    window_start: float,
    now: float,
    width: int,
) -> StatusBreakdown:
    """Split error responses by status class per bucket and overall.

    Args:
        status_events: (timestamp, status_code) pairs. Codes below 400 are
            ignored.
        window_start: Start of the requested window.
        now: End of the requested window.
        width: Bucket width in seconds.
    """
    per_bucket: dict[float, Counter[int]] = {
        key: Counter() for key in bucket_keys(window_start, now, width)
    }
    overall: Counter[int] = Counter()
    for timestamp, status in status_events:
        if status < 400:
            continue
        overall[status] += 1
        counter = per_bucket.get(bucket_key(timestamp, width))
        if counter is not None:
            counter[status] += 1
    return StatusBreakdown(
        time_series=[
            (key, StatusCounts.from_counter(counter)) for key, counter in per_bucket.items()
        ],
        totals=StatusCounts.from_counter(overall),
    )
