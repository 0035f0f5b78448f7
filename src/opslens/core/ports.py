"""Port interfaces for storage adapters.

These protocols define the contracts that storage adapters must implement.
The query service depends only on these interfaces, not concrete
implementations.
"""

from collections.abc import AsyncIterable
from typing import Protocol, runtime_checkable

from opslens.core.models import EventFilter, JobExecution, TelemetryEvent, TimeRange


@runtime_checkable
class EventStoragePort(Protocol):
    """Port for event storage operations.

    One adapter instance holds one kind of event (request or query events).
    Examples: InMemoryEventStorage, RingBufferEventCollector,
    SQLiteRequestEventStorage, SQLiteQueryEventStorage.
    """

    async def write(self, event: TelemetryEvent) -> None:
        """Append an event. Stored events are never modified."""
        ...

    def find_events(
        self,
        time_range: TimeRange,
        event_filter: EventFilter | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> AsyncIterable[TelemetryEvent]:
        """Find events whose timestamp lies within the closed time range.

        Args:
            time_range: Inclusive [start, end] bounds.
            event_filter: Optional restrictions on dimension, duration,
                slowness and outcome.
            limit: Maximum number of events. When set, the most recent
                ``limit`` matching events are selected.
            newest_first: Yield newest first instead of oldest first.

        Returns:
            AsyncIterable of events, ordered by timestamp ascending unless
            ``newest_first`` is set.
        """
        ...

    async def distinct_dimensions(self, time_range: TimeRange) -> list[str]:
        """Return the sorted distinct routes or models seen in the range."""
        ...


@runtime_checkable
class JobExecutionStoragePort(Protocol):
    """Port for job execution storage operations.

    Examples: InMemoryJobExecutionStorage, SQLiteJobExecutionStorage.
    """

    async def write(self, execution: JobExecution) -> None:
        """Insert an execution, replacing any earlier record with the same id."""
        ...

    def find_executions(
        self, since: float | None = None, limit: int | None = None
    ) -> AsyncIterable[JobExecution]:
        """Find executions ordered by start time, newest first.

        Args:
            since: Only executions started at or after this Unix timestamp.
            limit: Maximum number of executions.
        """
        ...
