"""Telemetry query service.

Fetches events and job executions from the storage ports, runs them through
bucketing, aggregation and health classification, and returns report
objects. Every call starts from scratch; nothing is cached between calls.

The ``build_*`` functions are the pure part: they take already-fetched
records and can be used directly, e.g. by the in-memory collector.
"""

import dataclasses
import time
from collections.abc import AsyncIterable, Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TypeVar

from opslens.config import EngineSettings
from opslens.core.aggregation import aggregate, status_breakdown, top_by_latency, top_by_volume
from opslens.core.buckets import OPS_WINDOWS, Window, parse_window, window_bounds
from opslens.core.exceptions import (
    InvalidQueryError,
    InvalidWindowError,
    OpslensError,
    StoreUnavailableError,
)
from opslens.core.health import evaluate_jobs, overall_health
from opslens.core.logs import get_logger
from opslens.core.models import (
    EventFilter,
    JobExecution,
    QueryEvent,
    RequestEvent,
)
from opslens.core.ports import EventStoragePort, JobExecutionStoragePort
from opslens.core.profiles import (
    QUERY_OPERATION_PROFILE,
    REQUEST_ENDPOINT_PROFILE,
    REQUEST_ROUTE_PROFILE,
)
from opslens.core.reports import OpsReport, PerfReport, QueryMetricsReport, RequestMetricsReport

logger = get_logger(__name__)

T = TypeVar("T")

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no", ""}


@dataclass(frozen=True)
class TelemetryQuery:
    """Validated query input.

    Attributes:
        window: Lookback window.
        dimension_filter: Route or model to restrict to.
        min_duration_ms: Only events at least this slow.
        slow_only: Only events flagged slow.
    """

    window: Window = Window.ONE_DAY
    dimension_filter: str | None = None
    min_duration_ms: int | None = None
    slow_only: bool = False

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, str | None],
        dimension_param: str = "route",
        allowed_windows: Sequence[Window] | None = None,
    ) -> "TelemetryQuery":
        """Parse raw query-string values.

        Recognized keys: ``window`` (default "24h"), ``dimension_param``
        (e.g. "route" or "model"), ``minDuration`` and ``slowOnly``.

        Raises:
            InvalidWindowError: For an unknown or disallowed window.
            InvalidQueryError: For a malformed minDuration or slowOnly.
        """
        window = parse_window(params.get("window") or Window.ONE_DAY, allowed_windows)
        return cls(
            window=window,
            dimension_filter=params.get(dimension_param) or None,
            min_duration_ms=_parse_min_duration(params.get("minDuration")),
            slow_only=_parse_flag("slowOnly", params.get("slowOnly")),
        )


def _parse_min_duration(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise InvalidQueryError(f"minDuration must be an integer, got {raw!r}") from None
    if value < 0:
        raise InvalidQueryError(f"minDuration must be non-negative, got {value}")
    return value


def _parse_flag(name: str, raw: str | None) -> bool:
    if raw is None:
        return False
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise InvalidQueryError(f"{name} must be 'true' or 'false', got {raw!r}")


def _bounds_start(window: Window, now: float) -> float:
    return window_bounds(window, now).start


def build_request_report(
    events: Sequence[RequestEvent],
    window: Window,
    now: float,
    settings: EngineSettings,
) -> RequestMetricsReport:
    """Aggregate request events grouped by route."""
    agg = aggregate(
        events, REQUEST_ROUTE_PROFILE, _bounds_start(window, now), now, window.bucket_width
    )
    summaries = agg.group_summaries()
    return RequestMetricsReport(
        window=window,
        timestamp=now,
        time_series=agg.time_series(),
        top_routes=top_by_volume(summaries, settings.top_volume_limit),
        slowest_routes=top_by_latency(
            summaries, settings.top_latency_limit, settings.request_min_samples
        ),
        totals=agg.totals_summary(),
    )


def build_query_report(
    events: Sequence[QueryEvent],
    window: Window,
    now: float,
    settings: EngineSettings,
    recent_slow: Sequence[QueryEvent] = (),
    available_models: Sequence[str] = (),
) -> QueryMetricsReport:
    """Aggregate query events grouped by model and action."""
    agg = aggregate(
        events, QUERY_OPERATION_PROFILE, _bounds_start(window, now), now, window.bucket_width
    )
    summaries = agg.group_summaries()
    return QueryMetricsReport(
        window=window,
        timestamp=now,
        time_series=agg.time_series(),
        top_operations=top_by_volume(summaries, settings.top_volume_limit),
        slowest_operations=top_by_latency(
            summaries, settings.top_latency_limit, settings.query_min_samples
        ),
        recent_slow_queries=list(recent_slow),
        totals=agg.totals_summary(),
        available_models=sorted(available_models),
    )


def build_perf_report(
    events: Sequence[RequestEvent],
    window: Window,
    now: float,
    settings: EngineSettings,
) -> PerfReport:
    """Aggregate request events grouped by method and route."""
    agg = aggregate(
        events,
        REQUEST_ENDPOINT_PROFILE,
        _bounds_start(window, now),
        now,
        window.bucket_width,
        recent_per_group=settings.recent_per_group,
    )
    summaries = agg.group_summaries()
    newest_first = list(reversed(events))
    return PerfReport(
        window=window,
        timestamp=now,
        time_series=agg.time_series(),
        totals=agg.totals_summary(),
        route_stats=sorted(summaries, key=lambda s: s.last_hour_count, reverse=True),
        slowest_routes=top_by_latency(
            summaries, settings.perf_list_limit, settings.perf_min_samples
        ),
        most_frequent_routes=top_by_volume(summaries, settings.perf_list_limit),
        recent_slow_requests=[
            e for e in newest_first if e.duration_ms > settings.perf_slow_threshold_ms
        ][: settings.recent_limit],
        recent_errors=[
            _shorten_message(e, settings.error_message_length)
            for e in newest_first
            if e.failed
        ][: settings.recent_limit],
    )


def _shorten_message(event: RequestEvent, limit: int) -> RequestEvent:
    if event.error_message is None or len(event.error_message) <= limit:
        return event
    return dataclasses.replace(event, error_message=event.error_message[:limit])


def build_ops_report(
    executions: Sequence[JobExecution],
    error_events: Sequence[RequestEvent],
    window: Window,
    now: float,
    settings: EngineSettings,
) -> OpsReport:
    """Derive job health, the API error breakdown and overall health."""
    jobs = evaluate_jobs(executions, now, settings.jobs, settings.job_lookback)
    breakdown = status_breakdown(
        ((e.timestamp, e.status_code) for e in error_events),
        _bounds_start(window, now),
        now,
        window.bucket_width,
    )
    health = overall_health(
        (job.health for job in jobs),
        breakdown.totals.server_errors,
        settings.degraded_threshold,
    )
    return OpsReport(
        window=window,
        timestamp=now,
        jobs=jobs,
        api_errors=breakdown,
        overall_health=health,
    )


class TelemetryQueryService:
    """Facade composing fetch, bucketing, aggregation and health derivation.

    Args:
        request_store: Store of RequestEvent records.
        query_store: Store of QueryEvent records (needed for query_metrics).
        job_store: Store of JobExecution records (optional for ops_metrics;
            without it no jobs are reported).
        settings: Engine tunables; defaults when omitted.
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        request_store: EventStoragePort,
        query_store: EventStoragePort | None = None,
        job_store: JobExecutionStoragePort | None = None,
        settings: EngineSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._request_store = request_store
        self._query_store = query_store
        self._job_store = job_store
        self._settings = settings or EngineSettings()
        self._clock = clock

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    async def request_metrics(self, query: TelemetryQuery) -> RequestMetricsReport:
        """Request metrics, filtered to one exact route when given."""
        now = self._clock()
        bounds = window_bounds(query.window, now)
        event_filter = EventFilter(
            dimension=query.dimension_filter, min_duration_ms=query.min_duration_ms
        )
        with _store_errors("request event store"):
            events = await _collect(
                self._request_store.find_events(bounds, event_filter, self._settings.max_events)
            )
        report = build_request_report(events, query.window, now, self._settings)
        logger.debug(
            "request metrics window=%s events=%d routes=%d",
            query.window.value,
            len(events),
            len(report.top_routes),
        )
        return report

    async def query_metrics(self, query: TelemetryQuery) -> QueryMetricsReport:
        """Query metrics, filtered to one exact model and optionally slow only."""
        store = self._require_query_store()
        now = self._clock()
        bounds = window_bounds(query.window, now)
        event_filter = EventFilter(
            dimension=query.dimension_filter,
            min_duration_ms=query.min_duration_ms,
            slow_only=query.slow_only,
        )
        with _store_errors("query event store"):
            events = await _collect(
                store.find_events(bounds, event_filter, self._settings.max_events)
            )
            recent_slow = await _collect(
                store.find_events(
                    bounds,
                    EventFilter(slow_only=True),
                    self._settings.recent_slow_queries_limit,
                    newest_first=True,
                )
            )
            models = await store.distinct_dimensions(bounds)
        report = build_query_report(
            events, query.window, now, self._settings, recent_slow, models
        )
        logger.debug(
            "query metrics window=%s events=%d operations=%d",
            query.window.value,
            len(events),
            len(report.top_operations),
        )
        return report

    async def perf_metrics(self, query: TelemetryQuery) -> PerfReport:
        """Per-endpoint performance, filtered by route prefix and minimum duration."""
        now = self._clock()
        bounds = window_bounds(query.window, now)
        event_filter = EventFilter(
            dimension=query.dimension_filter,
            prefix=True,
            min_duration_ms=query.min_duration_ms,
        )
        with _store_errors("request event store"):
            events = await _collect(
                self._request_store.find_events(bounds, event_filter, self._settings.max_events)
            )
        report = build_perf_report(events, query.window, now, self._settings)
        logger.debug(
            "perf metrics window=%s events=%d endpoints=%d",
            query.window.value,
            len(events),
            len(report.route_stats),
        )
        return report

    async def ops_metrics(self, query: TelemetryQuery) -> OpsReport:
        """Job health, API error breakdown and overall system health."""
        if query.window not in OPS_WINDOWS:
            raise InvalidWindowError(query.window.value, [w.value for w in OPS_WINDOWS])
        now = self._clock()
        bounds = window_bounds(query.window, now)
        executions: list[JobExecution] = []
        if self._job_store is not None:
            with _store_errors("job execution store"):
                executions = await _collect(
                    self._job_store.find_executions(limit=self._settings.max_executions)
                )
        with _store_errors("request event store"):
            error_events = await _collect(
                self._request_store.find_events(
                    bounds, EventFilter(errors_only=True), self._settings.max_events
                )
            )
        report = build_ops_report(executions, error_events, query.window, now, self._settings)
        logger.debug(
            "ops metrics window=%s executions=%d errors=%d health=%s",
            query.window.value,
            len(executions),
            len(error_events),
            report.overall_health.value,
        )
        return report

    def _require_query_store(self) -> EventStoragePort:
        if self._query_store is None:
            raise StoreUnavailableError("query event store", "not configured")
        return self._query_store


async def _collect(items: AsyncIterable[T]) -> list[T]:
    return [item async for item in items]


@contextmanager
def _store_errors(store: str) -> Iterator[None]:
    """Turn any store failure into StoreUnavailableError."""
    try:
        yield
    except OpslensError:
        raise
    except Exception as exc:
        logger.warning("%s fetch failed: %s", store, exc)
        raise StoreUnavailableError(store, exc) from exc

