"""In-memory storage adapters for events and job executions."""

from collections.abc import AsyncIterable, Iterable

from opslens.core.models import EventFilter, JobExecution, TelemetryEvent, TimeRange


def select_events(
    events: Iterable[TelemetryEvent],
    time_range: TimeRange,
    event_filter: EventFilter | None = None,
    limit: int | None = None,
    newest_first: bool = False,
) -> list[TelemetryEvent]:
    """Apply the EventStoragePort selection rules to a plain collection.

    Keeps events inside the closed range that pass the filter, then the
    most recent ``limit`` of them, ordered ascending unless ``newest_first``.
    """
    matching = [
        e
        for e in events
        if e.timestamp in time_range and (event_filter is None or event_filter.matches(e))
    ]
    matching.sort(key=lambda e: e.timestamp)
    if limit is not None:
        matching = matching[-limit:] if limit > 0 else []
    if newest_first:
        matching.reverse()
    return matching


class InMemoryEventStorage:
    """In-memory implementation of EventStoragePort.

    Stores events in a list. Suitable for testing and low-volume
    applications where persistence is not required.
    """

    def __init__(self) -> None:
        self._events: list[TelemetryEvent] = []

    async def write(self, event: TelemetryEvent) -> None:
        """Append an event to storage."""
        self._events.append(event)

    async def find_events(
        self,
        time_range: TimeRange,
        event_filter: EventFilter | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> AsyncIterable[TelemetryEvent]:
        """Find events within the time range, oldest first by default."""
        for event in select_events(
            self._events, time_range, event_filter, limit, newest_first
        ):
            yield event

    async def distinct_dimensions(self, time_range: TimeRange) -> list[str]:
        """Return the sorted distinct routes or models seen in the range."""
        return sorted({e.dimension for e in self._events if e.timestamp in time_range})

    async def count(self) -> int:
        """Return total number of events in storage."""
        return len(self._events)


class InMemoryJobExecutionStorage:
    """In-memory implementation of JobExecutionStoragePort.

    Keeps the latest record per execution id, so a run can be written
    when it starts and again when it finishes.
    """

    def __init__(self) -> None:
        self._executions: dict[str, JobExecution] = {}

    async def write(self, execution: JobExecution) -> None:
        """Insert or replace an execution."""
        self._executions[execution.execution_id] = execution

    async def find_executions(
        self, since: float | None = None, limit: int | None = None
    ) -> AsyncIterable[JobExecution]:
        """Find executions newest first."""
        selected = [
            e for e in self._executions.values() if since is None or e.started_at >= since
        ]
        selected.sort(key=lambda e: e.started_at, reverse=True)
        if limit is not None:
            selected = selected[:limit]
        for execution in selected:
            yield execution
