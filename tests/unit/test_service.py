"""Tests for the telemetry query service."""

from collections.abc import AsyncIterable

import pytest

from opslens.config import EngineSettings
from opslens.core.buckets import DAY, HOUR, MINUTE, Window
from opslens.core.exceptions import InvalidQueryError, InvalidWindowError, StoreUnavailableError
from opslens.core.models import (
    EventFilter,
    JobDefinition,
    JobHealth,
    JobStatus,
    SystemHealth,
    TimeRange,
)
from opslens.core.service import TelemetryQuery, TelemetryQueryService

T0 = 1_704_067_200.0
NOW = T0 + DAY


def _service(request_store, query_store=None, job_store=None, **settings) -> TelemetryQueryService:
    return TelemetryQueryService(
        request_store,
        query_store=query_store,
        job_store=job_store,
        settings=EngineSettings(**settings),
        clock=lambda: NOW,
    )


class BrokenStore:
    """Event store whose reads always fail."""

    async def write(self, event) -> None:
        raise OSError("disk full")

    async def find_events(
        self, time_range: TimeRange, event_filter: EventFilter | None = None,
        limit: int | None = None, newest_first: bool = False,
    ) -> AsyncIterable:
        raise OSError("database is locked")
        yield  # pragma: no cover

    async def distinct_dimensions(self, time_range: TimeRange) -> list[str]:
        raise OSError("database is locked")


class TestTelemetryQuery:
    @pytest.mark.core
    def test_defaults(self) -> None:
        query = TelemetryQuery.from_params({})

        assert query == TelemetryQuery(window=Window.ONE_DAY)

    @pytest.mark.core
    def test_parses_all_parameters(self) -> None:
        query = TelemetryQuery.from_params(
            {"window": "7d", "model": "Game", "minDuration": "150", "slowOnly": "true"},
            dimension_param="model",
        )

        assert query == TelemetryQuery(
            window=Window.ONE_WEEK, dimension_filter="Game", min_duration_ms=150, slow_only=True
        )

    @pytest.mark.core
    def test_invalid_window(self) -> None:
        with pytest.raises(InvalidWindowError):
            TelemetryQuery.from_params({"window": "3h"})

    @pytest.mark.core
    @pytest.mark.parametrize(
        "params",
        [{"minDuration": "fast"}, {"minDuration": "-1"}, {"slowOnly": "maybe"}],
    )
    def test_invalid_parameters(self, params: dict[str, str]) -> None:
        with pytest.raises(InvalidQueryError):
            TelemetryQuery.from_params(params)

    @pytest.mark.core
    def test_window_restricted_to_allowed_subset(self) -> None:
        with pytest.raises(InvalidWindowError):
            TelemetryQuery.from_params({"window": "1h"}, allowed_windows=[Window.ONE_DAY])


class TestRequestMetrics:
    async def test_aggregates_only_events_inside_window(
        self, request_store, make_request
    ) -> None:
        await request_store.write(make_request(offset=-HOUR))
        await request_store.write(make_request(offset=DAY - 10 * MINUTE, status_code=500))
        await request_store.write(make_request(offset=DAY - 5 * MINUTE))

        report = await _service(request_store).request_metrics(TelemetryQuery())

        assert report.window is Window.ONE_DAY
        assert report.timestamp == NOW
        assert report.totals.count == 2
        assert report.totals.errors == 1
        assert report.totals.error_rate == 50.0
        assert len(report.time_series) == 25

    async def test_exact_route_filter(self, request_store, make_request) -> None:
        await request_store.write(make_request(offset=DAY - 60, route="/api/games"))
        await request_store.write(make_request(offset=DAY - 50, route="/api/games/1"))

        report = await _service(request_store).request_metrics(
            TelemetryQuery(dimension_filter="/api/games")
        )

        assert [s.key for s in report.top_routes] == [("/api/games",)]

    async def test_slowest_routes_need_enough_samples(self, request_store, make_request) -> None:
        for i in range(5):
            await request_store.write(make_request(offset=DAY - 100 + i, route="/a", duration_ms=50))
        for i in range(4):
            await request_store.write(make_request(offset=DAY - 90 + i, route="/b", duration_ms=900))

        report = await _service(request_store).request_metrics(TelemetryQuery())

        assert [s.key for s in report.slowest_routes] == [("/a",)]
        assert [s.key for s in report.top_routes] == [("/a",), ("/b",)]

    async def test_fetch_cap_keeps_most_recent_events(self, request_store, make_request) -> None:
        for i in range(5):
            await request_store.write(make_request(offset=DAY - 100 + i, duration_ms=i))

        report = await _service(request_store, max_events=2).request_metrics(TelemetryQuery())

        assert report.totals.count == 2
        assert report.totals.durations.min == 3

    async def test_store_failure_raises_store_unavailable(self) -> None:
        with pytest.raises(StoreUnavailableError) as exc_info:
            await _service(BrokenStore()).request_metrics(TelemetryQuery())

        assert "database is locked" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, OSError)


class TestQueryMetrics:
    async def test_requires_query_store(self, request_store) -> None:
        with pytest.raises(StoreUnavailableError, match="query event store"):
            await _service(request_store).query_metrics(TelemetryQuery())

    async def test_operations_slow_queries_and_models(
        self, request_store, query_store, make_query
    ) -> None:
        await query_store.write(make_query(offset=DAY - 300, model="Game", duration_ms=150))
        await query_store.write(make_query(offset=DAY - 200, model="Game", duration_ms=20))
        await query_store.write(make_query(offset=DAY - 100, model="User", duration_ms=400))
        await query_store.write(make_query(offset=-10, model="Archive", duration_ms=999))

        report = await _service(request_store, query_store).query_metrics(TelemetryQuery())

        assert report.totals.count == 3
        assert report.totals.slow == 2
        assert [e.model for e in report.recent_slow_queries] == ["User", "Game"]
        assert report.available_models == ["Game", "User"]

    async def test_model_and_slow_only_filters(
        self, request_store, query_store, make_query
    ) -> None:
        await query_store.write(make_query(offset=DAY - 300, model="Game", duration_ms=150))
        await query_store.write(make_query(offset=DAY - 200, model="Game", duration_ms=20))
        await query_store.write(make_query(offset=DAY - 100, model="User", duration_ms=400))

        report = await _service(request_store, query_store).query_metrics(
            TelemetryQuery(dimension_filter="Game", slow_only=True)
        )

        assert report.totals.count == 1
        # Filters never narrow the model list or the recent slow list.
        assert report.available_models == ["Game", "User"]
        assert len(report.recent_slow_queries) == 2


class TestPerfMetrics:
    async def test_prefix_and_min_duration_filters(self, request_store, make_request) -> None:
        await request_store.write(make_request(offset=DAY - 30, route="/api/games/1", duration_ms=300))
        await request_store.write(make_request(offset=DAY - 20, route="/api/games/2", duration_ms=10))
        await request_store.write(make_request(offset=DAY - 10, route="/api/users", duration_ms=500))

        report = await _service(request_store).perf_metrics(
            TelemetryQuery(dimension_filter="/api/games", min_duration_ms=100)
        )

        assert [s.labels["route"] for s in report.route_stats] == ["/api/games/1"]

    async def test_recent_lists_newest_first_with_short_messages(
        self, request_store, make_request
    ) -> None:
        await request_store.write(
            make_request(offset=DAY - 30, status_code=500, error_message="x" * 500)
        )
        await request_store.write(make_request(offset=DAY - 20, duration_ms=250))
        await request_store.write(make_request(offset=DAY - 10, status_code=404, duration_ms=900))

        report = await _service(request_store).perf_metrics(TelemetryQuery())

        assert [e.timestamp for e in report.recent_slow_requests] == [NOW - 10, NOW - 20]
        assert [e.status_code for e in report.recent_errors] == [404, 500]
        assert report.recent_errors[1].error_message == "x" * 200

    async def test_recent_slow_requests_exclude_exact_threshold(
        self, request_store, make_request
    ) -> None:
        await request_store.write(make_request(offset=DAY - 20, duration_ms=200))
        await request_store.write(make_request(offset=DAY - 10, duration_ms=201))

        report = await _service(request_store).perf_metrics(TelemetryQuery())

        assert [e.duration_ms for e in report.recent_slow_requests] == [201]

    async def test_route_stats_sorted_by_last_hour_volume(
        self, request_store, make_request
    ) -> None:
        await request_store.write(make_request(offset=DAY - 5 * HOUR, route="/old"))
        await request_store.write(make_request(offset=DAY - 4 * HOUR, route="/old"))
        await request_store.write(make_request(offset=DAY - 60, route="/new"))

        report = await _service(request_store).perf_metrics(TelemetryQuery())

        assert [(s.labels["route"], s.last_hour_count) for s in report.route_stats] == [
            ("/new", 1),
            ("/old", 0),
        ]


class TestOpsMetrics:
    async def test_healthy_without_job_store(self, request_store) -> None:
        report = await _service(request_store).ops_metrics(TelemetryQuery())

        assert report.jobs == []
        assert report.overall_health is SystemHealth.HEALTHY

    async def test_rejects_hourly_window(self, request_store) -> None:
        with pytest.raises(InvalidWindowError):
            await _service(request_store).ops_metrics(TelemetryQuery(window=Window.ONE_HOUR))

    async def test_degraded_by_server_errors(self, request_store, make_request) -> None:
        for i in range(11):
            await request_store.write(make_request(offset=DAY - 100 + i, status_code=502))
        await request_store.write(make_request(offset=DAY - 50, status_code=404))

        report = await _service(request_store).ops_metrics(TelemetryQuery())

        assert report.error_totals.other_5xx == 11
        assert report.error_totals.status_404 == 1
        assert report.overall_health is SystemHealth.DEGRADED

    async def test_failing_job_makes_system_unhealthy(
        self, request_store, job_store, make_execution
    ) -> None:
        await job_store.write(make_execution(status=JobStatus.FAILED, offset=DAY - HOUR))

        report = await _service(
            request_store,
            job_store=job_store,
            jobs=(JobDefinition(name="backup"), JobDefinition(name="daily-challenge")),
        ).ops_metrics(TelemetryQuery())

        assert [(j.job_name, j.health) for j in report.jobs] == [
            ("backup", JobHealth.HEALTHY),
            ("daily-challenge", JobHealth.UNHEALTHY),
        ]
        assert report.overall_health is SystemHealth.UNHEALTHY

    async def test_job_written_twice_counts_once(
        self, request_store, job_store, make_execution
    ) -> None:
        await job_store.write(
            make_execution(status=JobStatus.RUNNING, offset=DAY - 60, execution_id="run-1")
        )
        await job_store.write(
            make_execution(status=JobStatus.SUCCESS, offset=DAY - 60, execution_id="run-1")
        )

        report = await _service(request_store, job_store=job_store).ops_metrics(TelemetryQuery())

        (job,) = report.jobs
        assert job.stats.total == 1
        assert job.health is JobHealth.HEALTHY
