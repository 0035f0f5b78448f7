"""Core domain models for telemetry events and job executions."""

from dataclasses import dataclass
from enum import Enum

# Requests at or above this duration are treated as slow.
SLOW_REQUEST_THRESHOLD_MS = 200

# Queries at or above this duration get their slow flag set at write time.
SLOW_QUERY_THRESHOLD_MS = 100


def _check_duration(duration_ms: int) -> None:
    if duration_ms < 0:
        raise ValueError(f"duration_ms must be non-negative, got {duration_ms}")


@dataclass(frozen=True)
class RequestEvent:
    """One observed HTTP request.

    Attributes:
        timestamp: Unix timestamp in seconds at which the request completed.
        route: Request path without query string.
        method: HTTP method.
        status_code: Response status code. Codes >= 400 count as errors.
        duration_ms: Handling time in whole milliseconds.
        request_id: Correlation id shared with query events.
        user_id: Authenticated user, if any.
        is_admin_route: True for routes under /api/admin.
        error_code: Machine-readable error code for failed requests.
        error_message: Human-readable error description.
    """

    timestamp: float
    route: str
    method: str
    status_code: int
    duration_ms: int
    request_id: str = ""
    user_id: str | None = None
    is_admin_route: bool = False
    error_code: str | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        _check_duration(self.duration_ms)

    @property
    def dimension(self) -> str:
        return self.route

    @property
    def failed(self) -> bool:
        return self.status_code >= 400

    @property
    def slow(self) -> bool:
        return self.duration_ms >= SLOW_REQUEST_THRESHOLD_MS


@dataclass(frozen=True)
class QueryEvent:
    """One observed data-access operation.

    Attributes:
        timestamp: Unix timestamp in seconds at which the query completed.
        model: Data model the query ran against.
        action: Operation name (findMany, update, ...).
        duration_ms: Execution time in whole milliseconds.
        success: False when the query raised.
        slow: Set at write time when duration_ms crossed the slow threshold.
        request_id: Correlation id of the enclosing request, if any.
        error: Error text for failed queries.
        record_count: Number of affected or returned records, when known.
    """

    timestamp: float
    model: str
    action: str
    duration_ms: int
    success: bool = True
    slow: bool = False
    request_id: str | None = None
    error: str | None = None
    record_count: int | None = None

    def __post_init__(self) -> None:
        _check_duration(self.duration_ms)

    @property
    def dimension(self) -> str:
        return self.model

    @property
    def failed(self) -> bool:
        return not self.success


TelemetryEvent = RequestEvent | QueryEvent


class JobStatus(str, Enum):
    """Execution-level state reported by the job runner."""

    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class JobExecution:
    """One run of a scheduled job, as recorded by the job runner.

    Attributes:
        execution_id: Unique id of the run.
        job_name: Name of the scheduled job.
        status: Current execution state.
        started_at: Unix timestamp in seconds.
        completed_at: Unix timestamp in seconds, None while running.
        duration_ms: Run time in milliseconds, None while running.
        error: Failure description for failed runs.
        triggered_by: Who or what started the run (cron, manual, ...).
    """

    execution_id: str
    job_name: str
    status: JobStatus
    started_at: float
    completed_at: float | None = None
    duration_ms: int | None = None
    error: str | None = None
    triggered_by: str | None = None


class JobHealth(str, Enum):
    """Derived health label for a single job."""

    HEALTHY = "healthy"
    RUNNING = "running"
    UNHEALTHY = "unhealthy"


class SystemHealth(str, Enum):
    """Derived health label for the whole system."""

    HEALTHY = "healthy"
    RUNNING = "running"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class TimeRange:
    """Closed time interval [start, end] in Unix seconds."""

    start: float
    end: float

    def __contains__(self, timestamp: float) -> bool:
        return self.start <= timestamp <= self.end


@dataclass(frozen=True)
class EventFilter:
    """Optional restrictions applied when fetching events.

    Attributes:
        dimension: Route (request events) or model (query events) to match.
        prefix: Match ``dimension`` as a prefix instead of exactly.
        min_duration_ms: Only events at least this slow.
        slow_only: Only events flagged slow.
        errors_only: Only failed events.
    """

    dimension: str | None = None
    prefix: bool = False
    min_duration_ms: int | None = None
    slow_only: bool = False
    errors_only: bool = False

    def matches(self, event: TelemetryEvent) -> bool:
        """Return True if the event passes every configured restriction."""
        if self.dimension is not None:
            if self.prefix:
                if not event.dimension.startswith(self.dimension):
                    return False
            elif event.dimension != self.dimension:
                return False
        if self.min_duration_ms is not None and event.duration_ms < self.min_duration_ms:
            return False
        if self.slow_only and not event.slow:
            return False
        if self.errors_only and not event.failed:
            return False
        return True


@dataclass(frozen=True)
class JobDefinition:
    """Static description of a scheduled job known to the application."""

    name: str
    display_name: str = ""
    description: str = ""
    schedule: str | None = None
