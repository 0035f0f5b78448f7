"""BDD step definitions for operational health features."""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pytest
from pytest_bdd import given, parsers, then, when

from opslens.adapters.storage.in_memory import (
    InMemoryEventStorage,
    InMemoryJobExecutionStorage,
)
from opslens.config import EngineSettings
from opslens.core.models import JobDefinition, JobExecution, JobStatus, RequestEvent
from opslens.core.reports import OpsReport
from opslens.core.service import TelemetryQuery, TelemetryQueryService


@dataclass
class HealthScenarioContext:
    """Shared state between steps in a health scenario."""

    now: float = 0.0
    request_store: InMemoryEventStorage = field(default_factory=InMemoryEventStorage)
    job_store: InMemoryJobExecutionStorage = field(default_factory=InMemoryJobExecutionStorage)
    jobs: list[JobDefinition] = field(default_factory=list)
    report: OpsReport | None = None


def run_async(coro: Any) -> Any:
    """Run a coroutine synchronously."""
    return asyncio.run(coro)


@pytest.fixture
def ctx() -> HealthScenarioContext:
    """Fresh scenario context for each test."""
    return HealthScenarioContext()


@given(parsers.parse("the current time is {moment}"))
def step_now(ctx: HealthScenarioContext, moment: str) -> None:
    parsed = datetime.strptime(moment, "%Y-%m-%d %H:%M").replace(tzinfo=timezone.utc)
    ctx.now = parsed.timestamp()


@given(parsers.parse('the scheduled job "{name}" is configured'))
def step_job_configured(ctx: HealthScenarioContext, name: str) -> None:
    ctx.jobs.append(JobDefinition(name=name))


@given(parsers.parse('a {status} execution of "{job}" started {minutes:d} minutes ago'))
def step_execution(ctx: HealthScenarioContext, status: str, job: str, minutes: int) -> None:
    started = ctx.now - minutes * 60
    state = JobStatus(status)
    finished = state != JobStatus.RUNNING
    execution = JobExecution(
        execution_id=str(uuid.uuid4()),
        job_name=job,
        status=state,
        started_at=started,
        completed_at=started + 5 if finished else None,
        duration_ms=5000 if finished else None,
        error="job failed" if state == JobStatus.FAILED else None,
    )
    run_async(ctx.job_store.write(execution))


@given(
    parsers.parse(
        '{count:d} requests to "{route}" answered with status {status:d} in the last hour'
    )
)
def step_requests(ctx: HealthScenarioContext, count: int, route: str, status: int) -> None:
    for i in range(count):
        event = RequestEvent(
            timestamp=ctx.now - 60 - i,
            route=route,
            method="GET",
            status_code=status,
            duration_ms=20,
        )
        run_async(ctx.request_store.write(event))


@when(parsers.parse('the ops report is requested for window "{window}"'))
def step_ops_report(ctx: HealthScenarioContext, window: str) -> None:
    service = TelemetryQueryService(
        ctx.request_store,
        job_store=ctx.job_store,
        settings=EngineSettings(jobs=tuple(ctx.jobs)),
        clock=lambda: ctx.now,
    )
    ctx.report = run_async(service.ops_metrics(TelemetryQuery.from_params({"window": window})))


@then(parsers.parse('the job "{name}" is "{label}"'))
def step_job_label(ctx: HealthScenarioContext, name: str, label: str) -> None:
    assert ctx.report is not None
    jobs = {job.job_name: job for job in ctx.report.jobs}
    assert jobs[name].health.value == label


@then(parsers.parse('the overall health is "{label}"'))
def step_overall(ctx: HealthScenarioContext, label: str) -> None:
    assert ctx.report is not None
    assert ctx.report.overall_health.value == label


@then(parsers.parse("the API error totals show {count:d} other 5xx errors"))
def step_error_totals(ctx: HealthScenarioContext, count: int) -> None:
    assert ctx.report is not None
    assert ctx.report.error_totals.other_5xx == count
