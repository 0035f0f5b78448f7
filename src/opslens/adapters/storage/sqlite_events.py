"""SQLite storage adapters for request and query events."""

import sqlite3
from collections.abc import AsyncIterable
from typing import Any

import aiosqlite

from opslens.adapters.storage.sqlite_base import SQLiteStorageBase
from opslens.core.models import (
    SLOW_REQUEST_THRESHOLD_MS,
    EventFilter,
    QueryEvent,
    RequestEvent,
    TelemetryEvent,
    TimeRange,
)

_REQUEST_SCHEMA = """
CREATE TABLE IF NOT EXISTS request_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    route TEXT NOT NULL,
    method TEXT NOT NULL,
    status_code INTEGER NOT NULL,
    duration_ms INTEGER NOT NULL,
    request_id TEXT NOT NULL DEFAULT '',
    user_id TEXT,
    is_admin_route INTEGER NOT NULL DEFAULT 0,
    error_code TEXT,
    error_message TEXT
);
CREATE INDEX IF NOT EXISTS idx_request_events_timestamp ON request_events(timestamp);
CREATE INDEX IF NOT EXISTS idx_request_events_route_timestamp
    ON request_events(route, timestamp);
CREATE INDEX IF NOT EXISTS idx_request_events_status_timestamp
    ON request_events(status_code, timestamp);
"""

_QUERY_SCHEMA = """
CREATE TABLE IF NOT EXISTS query_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    model TEXT NOT NULL,
    action TEXT NOT NULL,
    duration_ms INTEGER NOT NULL,
    success INTEGER NOT NULL DEFAULT 1,
    is_slow INTEGER NOT NULL DEFAULT 0,
    request_id TEXT,
    error TEXT,
    record_count INTEGER
);
CREATE INDEX IF NOT EXISTS idx_query_events_timestamp ON query_events(timestamp);
CREATE INDEX IF NOT EXISTS idx_query_events_model_timestamp
    ON query_events(model, timestamp);
CREATE INDEX IF NOT EXISTS idx_query_events_slow_timestamp
    ON query_events(is_slow, timestamp);
"""


class _SQLiteEventStorage(SQLiteStorageBase):
    """Shared implementation of EventStoragePort over one event table.

    Subclasses set the table layout and the row mapping. Filters are
    translated into a WHERE clause; column and table names come only from
    class attributes, values are always bound parameters.
    """

    _table: str
    _columns: tuple[str, ...]
    _dimension_column: str
    _slow_clause: str
    _error_clause: str

    def _to_row(self, event: Any) -> tuple[Any, ...]:
        raise NotImplementedError

    def _from_row(self, row: sqlite3.Row | aiosqlite.Row) -> Any:
        raise NotImplementedError

    @property
    def _insert_query(self) -> str:
        placeholders = ", ".join("?" for _ in self._columns)
        return f"INSERT INTO {self._table} ({', '.join(self._columns)}) VALUES ({placeholders})"

    def _select(
        self,
        time_range: TimeRange,
        event_filter: EventFilter | None,
        limit: int | None,
        newest_first: bool,
    ) -> tuple[str, list[Any]]:
        clauses = ["timestamp >= ?", "timestamp <= ?"]
        params: list[Any] = [time_range.start, time_range.end]
        f = event_filter
        if f is not None:
            if f.dimension is not None:
                if f.prefix:
                    # substr avoids escaping LIKE wildcards in routes
                    clauses.append(f"substr({self._dimension_column}, 1, ?) = ?")
                    params.extend([len(f.dimension), f.dimension])
                else:
                    clauses.append(f"{self._dimension_column} = ?")
                    params.append(f.dimension)
            if f.min_duration_ms is not None:
                clauses.append("duration_ms >= ?")
                params.append(f.min_duration_ms)
            if f.slow_only:
                clauses.append(self._slow_clause)
            if f.errors_only:
                clauses.append(self._error_clause)

        columns = ", ".join(self._columns)
        query = (
            f"SELECT id, {columns} FROM {self._table} WHERE {' AND '.join(clauses)} "
            "ORDER BY timestamp DESC, id DESC"
        )
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        if not newest_first:
            query = f"SELECT id, {columns} FROM ({query}) ORDER BY timestamp ASC, id ASC"
        return query, params

    async def write(self, event: TelemetryEvent) -> None:
        """Write an event to storage."""
        async with self.async_connection() as db:
            await db.execute(self._insert_query, self._to_row(event))
            await db.commit()

    async def find_events(
        self,
        time_range: TimeRange,
        event_filter: EventFilter | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> AsyncIterable[TelemetryEvent]:
        """Find events within the time range.

        With a limit, the most recent matching rows are selected and then
        returned oldest first unless ``newest_first`` is set.
        """
        query, params = self._select(time_range, event_filter, limit, newest_first)
        async with self.async_connection() as db:
            async with db.execute(query, params) as cursor:
                async for row in cursor:
                    yield self._from_row(row[1:])

    async def distinct_dimensions(self, time_range: TimeRange) -> list[str]:
        """Return the sorted distinct routes or models seen in the range."""
        query = (
            f"SELECT DISTINCT {self._dimension_column} FROM {self._table} "
            f"WHERE timestamp >= ? AND timestamp <= ? ORDER BY {self._dimension_column}"
        )
        async with self.async_connection() as db:
            async with db.execute(query, (time_range.start, time_range.end)) as cursor:
                return [row[0] async for row in cursor]

    async def count(self) -> int:
        """Return total number of events in storage."""
        async with self.async_connection() as db:
            async with db.execute(f"SELECT COUNT(*) FROM {self._table}") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def delete_before(self, timestamp: float) -> int:
        """Delete events with timestamp < given value.

        Returns:
            Number of events deleted.
        """
        async with self.async_connection() as db:
            cursor = await db.execute(
                f"DELETE FROM {self._table} WHERE timestamp < ?", (timestamp,)
            )
            deleted = cursor.rowcount
            await db.commit()
            return deleted

    # --- Sync methods ---

    def write_sync(self, event: TelemetryEvent) -> None:
        """Synchronous write for non-async contexts."""
        with self.sync_connection() as conn:
            conn.execute(self._insert_query, self._to_row(event))
            conn.commit()

    def find_events_sync(
        self,
        time_range: TimeRange,
        event_filter: EventFilter | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[TelemetryEvent]:
        """Synchronous find_events for non-async contexts."""
        query, params = self._select(time_range, event_filter, limit, newest_first)
        with self.sync_connection() as conn:
            return [self._from_row(row[1:]) for row in conn.execute(query, params)]


class SQLiteRequestEventStorage(_SQLiteEventStorage):
    """SQLite implementation of EventStoragePort for request events.

    Uses aiosqlite for non-blocking async operations and WAL mode for
    concurrent access from several processes.
    """

    _table = "request_events"
    _columns = (
        "timestamp",
        "route",
        "method",
        "status_code",
        "duration_ms",
        "request_id",
        "user_id",
        "is_admin_route",
        "error_code",
        "error_message",
    )
    _dimension_column = "route"
    _slow_clause = f"duration_ms >= {SLOW_REQUEST_THRESHOLD_MS}"
    _error_clause = "status_code >= 400"

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path, _REQUEST_SCHEMA)

    def _to_row(self, event: RequestEvent) -> tuple[Any, ...]:
        return (
            event.timestamp,
            event.route,
            event.method,
            event.status_code,
            event.duration_ms,
            event.request_id,
            event.user_id,
            int(event.is_admin_route),
            event.error_code,
            event.error_message,
        )

    def _from_row(self, row: Any) -> RequestEvent:
        return RequestEvent(
            timestamp=row[0],
            route=row[1],
            method=row[2],
            status_code=row[3],
            duration_ms=row[4],
            request_id=row[5],
            user_id=row[6],
            is_admin_route=bool(row[7]),
            error_code=row[8],
            error_message=row[9],
        )


class SQLiteQueryEventStorage(_SQLiteEventStorage):
    """SQLite implementation of EventStoragePort for query events."""

    _table = "query_events"
    _columns = (
        "timestamp",
        "model",
        "action",
        "duration_ms",
        "success",
        "is_slow",
        "request_id",
        "error",
        "record_count",
    )
    _dimension_column = "model"
    _slow_clause = "is_slow = 1"
    _error_clause = "success = 0"

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path, _QUERY_SCHEMA)

    def _to_row(self, event: QueryEvent) -> tuple[Any, ...]:
        return (
            event.timestamp,
            event.model,
            event.action,
            event.duration_ms,
            int(event.success),
            int(event.slow),
            event.request_id,
            event.error,
            event.record_count,
        )

    def _from_row(self, row: Any) -> QueryEvent:
        return QueryEvent(
            timestamp=row[0],
            model=row[1],
            action=row[2],
            duration_ms=row[3],
            success=bool(row[4]),
            slow=bool(row[5]),
            request_id=row[6],
            error=row[7],
            record_count=row[8],
        )
