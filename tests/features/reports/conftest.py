"""BDD step definitions for request metrics features."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest
from pytest_bdd import given, parsers, then, when

from opslens.config import EngineSettings
from opslens.core.buckets import Window
from opslens.core.models import RequestEvent
from opslens.core.reports import RequestMetricsReport
from opslens.core.service import build_request_report


@dataclass
class ReportScenarioContext:
    """Shared state between steps in a report scenario."""

    day: str = ""
    events: list[RequestEvent] = field(default_factory=list)
    report: RequestMetricsReport | None = None


def at(ctx: ReportScenarioContext, clock: str) -> float:
    """Unix timestamp for an HH:MM time on the scenario's day."""
    moment = datetime.strptime(f"{ctx.day} {clock}", "%Y-%m-%d %H:%M")
    return moment.replace(tzinfo=timezone.utc).timestamp()


@pytest.fixture
def ctx() -> ReportScenarioContext:
    return ReportScenarioContext()


@given(parsers.parse("request events on {day}:"))
def step_events(ctx: ReportScenarioContext, day: str, datatable: list[list[str]]) -> None:
    ctx.day = day
    header, *rows = datatable
    for row in rows:
        values = dict(zip(header, row))
        ctx.events.append(
            RequestEvent(
                timestamp=at(ctx, values["time"]),
                route=values.get("route", "/api/games"),
                method="GET",
                status_code=int(values["status"]),
                duration_ms=int(values["duration"]),
            )
        )


@when(parsers.parse('request metrics are computed for window "{window}" at {clock}'))
def step_compute(ctx: ReportScenarioContext, window: str, clock: str) -> None:
    ctx.report = build_request_report(
        sorted(ctx.events, key=lambda e: e.timestamp),
        Window(window),
        at(ctx, clock),
        EngineSettings(),
    )


@then(parsers.parse("the time series has {count:d} buckets"))
def step_bucket_count(ctx: ReportScenarioContext, count: int) -> None:
    assert ctx.report is not None
    assert len(ctx.report.time_series) == count


@then(parsers.parse("the bucket at {clock} has {requests:d} requests and {errors:d} errors"))
def step_bucket(ctx: ReportScenarioContext, clock: str, requests: int, errors: int) -> None:
    assert ctx.report is not None
    point = next(p for p in ctx.report.time_series if p.timestamp == at(ctx, clock))
    assert (point.count, point.errors) == (requests, errors)


@then(parsers.parse("the totals show {requests:d} requests and {errors:d} errors"))
def step_totals(ctx: ReportScenarioContext, requests: int, errors: int) -> None:
    assert ctx.report is not None
    assert (ctx.report.totals.count, ctx.report.totals.errors) == (requests, errors)


@then(parsers.parse("the total error rate is {expected:f} percent"))
def step_error_rate(ctx: ReportScenarioContext, expected: float) -> None:
    assert ctx.report is not None
    assert ctx.report.totals.error_rate == pytest.approx(expected, abs=0.05)


@then(parsers.parse('the slowest routes are "{routes}"'))
def step_slowest(ctx: ReportScenarioContext, routes: str) -> None:
    assert ctx.report is not None
    assert [s.labels["route"] for s in ctx.report.slowest_routes] == routes.split(", ")


@then(parsers.parse('the top routes are "{routes}"'))
def step_top(ctx: ReportScenarioContext, routes: str) -> None:
    assert ctx.report is not None
    assert [s.labels["route"] for s in ctx.report.top_routes] == routes.split(", ")
