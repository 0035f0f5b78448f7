"""SQLite storage adapter for job executions."""

from collections.abc import AsyncIterable
from typing import Any

from opslens.adapters.storage.sqlite_base import SQLiteStorageBase
from opslens.core.models import JobExecution, JobStatus

_JOBS_SCHEMA = """
CREATE TABLE IF NOT EXISTS job_executions (
    execution_id TEXT PRIMARY KEY,
    job_name TEXT NOT NULL,
    status TEXT NOT NULL,
    started_at REAL NOT NULL,
    completed_at REAL,
    duration_ms INTEGER,
    error TEXT,
    triggered_by TEXT
);
CREATE INDEX IF NOT EXISTS idx_job_executions_started_at ON job_executions(started_at);
CREATE INDEX IF NOT EXISTS idx_job_executions_job_started
    ON job_executions(job_name, started_at);
"""

_UPSERT_EXECUTION = """
INSERT OR REPLACE INTO job_executions
    (execution_id, job_name, status, started_at, completed_at, duration_ms, error, triggered_by)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""

_SELECT_EXECUTIONS = """
SELECT execution_id, job_name, status, started_at, completed_at, duration_ms, error, triggered_by
FROM job_executions
"""


def _to_row(execution: JobExecution) -> tuple[Any, ...]:
    return (
        execution.execution_id,
        execution.job_name,
        execution.status.value,
        execution.started_at,
        execution.completed_at,
        execution.duration_ms,
        execution.error,
        execution.triggered_by,
    )


def _from_row(row: Any) -> JobExecution:
    return JobExecution(
        execution_id=row[0],
        job_name=row[1],
        status=JobStatus(row[2]),
        started_at=row[3],
        completed_at=row[4],
        duration_ms=row[5],
        error=row[6],
        triggered_by=row[7],
    )


class SQLiteJobExecutionStorage(SQLiteStorageBase):
    """SQLite implementation of JobExecutionStoragePort.

    Executions are keyed by id; writing the same id again replaces the
    row, so a run is recorded once when it starts and again when it ends.
    """

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path, _JOBS_SCHEMA)

    async def write(self, execution: JobExecution) -> None:
        """Insert or replace an execution."""
        async with self.async_connection() as db:
            await db.execute(_UPSERT_EXECUTION, _to_row(execution))
            await db.commit()

    async def find_executions(
        self, since: float | None = None, limit: int | None = None
    ) -> AsyncIterable[JobExecution]:
        """Find executions newest first."""
        query = _SELECT_EXECUTIONS
        params: list[Any] = []
        if since is not None:
            query += "WHERE started_at >= ?\n"
            params.append(since)
        query += "ORDER BY started_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        async with self.async_connection() as db:
            async with db.execute(query, params) as cursor:
                async for row in cursor:
                    yield _from_row(row)

    def write_sync(self, execution: JobExecution) -> None:
        """Synchronous write for job runners outside an event loop."""
        with self.sync_connection() as conn:
            conn.execute(_UPSERT_EXECUTION, _to_row(execution))
            conn.commit()
