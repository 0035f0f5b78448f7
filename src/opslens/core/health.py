"""Health classification for scheduled jobs and for the system as a whole.

Labels are derived on every call from the execution history and error
counts; nothing here is stored or cached.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from opslens.core.buckets import DAY
from opslens.core.models import (
    JobDefinition,
    JobExecution,
    JobHealth,
    JobStatus,
    SystemHealth,
)
from opslens.core.stats import average

DEFAULT_JOB_LOOKBACK = DAY
DEFAULT_DEGRADED_THRESHOLD = 10


@dataclass(frozen=True)
class JobStats:
    """Execution counts for one job.

    ``recent_*`` counts only runs started within the lookback window.
    ``avg_duration_ms`` averages successful runs that reported a duration
    and is None when there are none.
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    running: int = 0
    recent_successful: int = 0
    recent_failed: int = 0
    avg_duration_ms: int | None = None


@dataclass(frozen=True)
class JobReport:
    """Derived view of one job's execution history."""

    job_name: str
    health: JobHealth
    stats: JobStats
    last_execution: JobExecution | None = None
    last_success: JobExecution | None = None
    last_failure: JobExecution | None = None
    definition: JobDefinition | None = None


def classify_job(
    newest: JobExecution | None,
    last_success: JobExecution | None,
    last_failure: JobExecution | None,
    running: int,
    recent_successful: int,
) -> JobHealth:
    """Apply the job health rules.

    A job is running while any execution is in progress. It is unhealthy
    only when its newest run failed, that failure is newer than its newest
    success (or it never succeeded), and nothing succeeded in the lookback
    window. A later success after a failure makes it healthy again.
    """
    if running > 0:
        return JobHealth.RUNNING
    if (
        newest is not None
        and newest.status == JobStatus.FAILED
        and last_failure is not None
        and (last_success is None or last_failure.started_at > last_success.started_at)
        and recent_successful == 0
    ):
        return JobHealth.UNHEALTHY
    return JobHealth.HEALTHY


def evaluate_job(
    job_name: str,
    executions: Iterable[JobExecution],
    now: float,
    lookback: float = DEFAULT_JOB_LOOKBACK,
    definition: JobDefinition | None = None,
) -> JobReport:
    """Build the report for one job from its executions.

    Args:
        job_name: Job to report on. Executions of other jobs are ignored.
        executions: Execution records in any order.
        now: Reference instant (Unix seconds).
        lookback: Length in seconds of the trailing window for recent counts.
        definition: Optional static description to attach.
    """
    history = sorted(
        (e for e in executions if e.job_name == job_name),
        key=lambda e: e.started_at,
        reverse=True,
    )
    recent_since = now - lookback
    successful = [e for e in history if e.status == JobStatus.SUCCESS]
    failed = [e for e in history if e.status == JobStatus.FAILED]
    running = sum(1 for e in history if e.status == JobStatus.RUNNING)
    recent_successful = sum(1 for e in successful if e.started_at >= recent_since)
    recent_failed = sum(1 for e in failed if e.started_at >= recent_since)

    durations = [e.duration_ms for e in successful if e.duration_ms is not None]
    stats = JobStats(
        total=len(history),
        successful=len(successful),
        failed=len(failed),
        running=running,
        recent_successful=recent_successful,
        recent_failed=recent_failed,
        avg_duration_ms=average(durations) if durations else None,
    )

    newest = history[0] if history else None
    last_success = successful[0] if successful else None
    last_failure = failed[0] if failed else None
    return JobReport(
        job_name=job_name,
        health=classify_job(newest, last_success, last_failure, running, recent_successful),
        stats=stats,
        last_execution=newest,
        last_success=last_success,
        last_failure=last_failure,
        definition=definition,
    )


def evaluate_jobs(
    executions: Sequence[JobExecution],
    now: float,
    definitions: Sequence[JobDefinition] = (),
    lookback: float = DEFAULT_JOB_LOOKBACK,
) -> list[JobReport]:
    """Report on every configured job and every job seen in the history.

    Configured jobs come first in their configured order, even without any
    executions; jobs only seen in the history follow, sorted by name.
    """
    known = {d.name: d for d in definitions}
    seen = sorted({e.job_name for e in executions} - known.keys())
    names = [d.name for d in definitions] + seen
    return [
        evaluate_job(name, executions, now, lookback, definition=known.get(name))
        for name in names
    ]


def overall_health(
    job_labels: Iterable[JobHealth],
    server_errors: int,
    degraded_threshold: int = DEFAULT_DEGRADED_THRESHOLD,
) -> SystemHealth:
    """Combine job labels and the server error count into one system label.

    Priority: unhealthy, then running, then degraded (more than
    ``degraded_threshold`` responses with status >= 500), then healthy.
    """
    labels = set(job_labels)
    if JobHealth.UNHEALTHY in labels:
        return SystemHealth.UNHEALTHY
    if JobHealth.RUNNING in labels:
        return SystemHealth.RUNNING
    if server_errors > degraded_threshold:
        return SystemHealth.DEGRADED
    return SystemHealth.HEALTHY
