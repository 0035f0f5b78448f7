"""Ring buffer event collector.

Provides bounded in-memory storage that overwrites the oldest event once
the buffer is full. Useful for processes that want recent performance
figures with predictable memory use and no database.
"""

import dataclasses
import threading
import time
from collections.abc import AsyncIterable, Callable

from opslens.adapters.storage.in_memory import select_events
from opslens.config import EngineSettings
from opslens.core.buckets import Window, window_bounds
from opslens.core.models import EventFilter, RequestEvent, TelemetryEvent, TimeRange
from opslens.core.reports import PerfReport
from opslens.core.service import build_perf_report

DEFAULT_CAPACITY = 10_000
SNAPSHOT_SLOW_THRESHOLD_MS = 500


class RingBufferEventCollector:
    """Fixed-capacity ring buffer implementing EventStoragePort.

    Slots are preallocated; writes advance an index that wraps around to
    overwrite the oldest event. A single lock guards the slots and indices,
    so concurrent ``record`` calls and snapshot reads never corrupt them.

    Args:
        capacity: Maximum number of events held.
        settings: Engine settings used by ``snapshot``. Without them the
            snapshot lists only requests slower than 500 ms as slow.
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        settings: EngineSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._slots: list[TelemetryEvent | None] = [None] * capacity
        self._next = 0
        self._size = 0
        self._total = 0
        self._lock = threading.Lock()
        self._settings = settings or EngineSettings(
            perf_slow_threshold_ms=SNAPSHOT_SLOW_THRESHOLD_MS
        )
        self._clock = clock

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def total_recorded(self) -> int:
        """Number of events recorded since creation or the last clear."""
        return self._total

    def __len__(self) -> int:
        return self._size

    def record(self, event: TelemetryEvent) -> None:
        """Append an event, overwriting the oldest one when full."""
        with self._lock:
            self._slots[self._next] = event
            self._next = (self._next + 1) % self._capacity
            if self._size < self._capacity:
                self._size += 1
            self._total += 1

    async def write(self, event: TelemetryEvent) -> None:
        """Async alias of record() for EventStoragePort callers."""
        self.record(event)

    def events(self) -> list[TelemetryEvent]:
        """Return a copy of the buffered events, oldest first."""
        with self._lock:
            if self._size < self._capacity:
                held = self._slots[: self._size]
            else:
                held = self._slots[self._next :] + self._slots[: self._next]
        return [e for e in held if e is not None]

    def clear(self) -> None:
        """Drop all events and reset counters."""
        with self._lock:
            self._slots = [None] * self._capacity
            self._next = 0
            self._size = 0
            self._total = 0

    async def find_events(
        self,
        time_range: TimeRange,
        event_filter: EventFilter | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> AsyncIterable[TelemetryEvent]:
        """Find buffered events within the time range."""
        for event in select_events(
            self.events(), time_range, event_filter, limit, newest_first
        ):
            yield event

    async def distinct_dimensions(self, time_range: TimeRange) -> list[str]:
        """Return the sorted distinct routes or models seen in the range."""
        return sorted({e.dimension for e in self.events() if e.timestamp in time_range})

    def snapshot(self, window: Window = Window.ONE_DAY, now: float | None = None) -> PerfReport:
        """Compute a performance report from the buffered request events.

        Only request events inside the window are aggregated. The
        headline request total is ``total_recorded``, which also counts
        events already overwritten or outside the window.
        """
        current = self._clock() if now is None else now
        bounds = window_bounds(window, current)
        requests = [
            e for e in select_events(self.events(), bounds) if isinstance(e, RequestEvent)
        ]
        report = build_perf_report(requests, window, current, self._settings)
        return dataclasses.replace(report, total_recorded=self.total_recorded)
