"""Report objects returned by the query service."""

from dataclasses import dataclass, field

from opslens.core.aggregation import (
    GroupSummary,
    StatusBreakdown,
    StatusCounts,
    TimeSeriesPoint,
    Totals,
)
from opslens.core.buckets import Window
from opslens.core.health import JobReport
from opslens.core.models import QueryEvent, RequestEvent, SystemHealth


@dataclass(frozen=True)
class RequestMetricsReport:
    """Request throughput, latency and error rates for one window."""

    window: Window
    timestamp: float
    time_series: list[TimeSeriesPoint]
    top_routes: list[GroupSummary]
    slowest_routes: list[GroupSummary]
    totals: Totals


@dataclass(frozen=True)
class QueryMetricsReport:
    """Data-access latency, slow-query and error rates for one window."""

    window: Window
    timestamp: float
    time_series: list[TimeSeriesPoint]
    top_operations: list[GroupSummary]
    slowest_operations: list[GroupSummary]
    recent_slow_queries: list[QueryEvent]
    totals: Totals
    available_models: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PerfReport:
    """Per-endpoint performance view.

    ``total_recorded`` replaces the event count as the headline request
    total when the source keeps a lifetime counter (the in-memory
    collector); it is None for store-backed reports.
    """

    window: Window
    timestamp: float
    time_series: list[TimeSeriesPoint]
    totals: Totals
    route_stats: list[GroupSummary]
    slowest_routes: list[GroupSummary]
    most_frequent_routes: list[GroupSummary]
    recent_slow_requests: list[RequestEvent]
    recent_errors: list[RequestEvent]
    total_recorded: int | None = None


@dataclass(frozen=True)
class OpsReport:
    """Operational view: scheduled job health, API errors, overall health."""

    window: Window
    timestamp: float
    jobs: list[JobReport]
    api_errors: StatusBreakdown
    overall_health: SystemHealth

    @property
    def error_totals(self) -> StatusCounts:
        return self.api_errors.totals
