"""Shared test fixtures for all test modules."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from opslens.adapters.storage.in_memory import (
    InMemoryEventStorage,
    InMemoryJobExecutionStorage,
)
from opslens.core.models import JobExecution, JobStatus, QueryEvent, RequestEvent

# 2024-01-01T00:00:00Z, aligned to every bucket width.
T0 = 1_704_067_200.0


@pytest.fixture
def request_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for request event storage tests."""
    return str(tmp_path / "requests.db")


@pytest.fixture
def query_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for query event storage tests."""
    return str(tmp_path / "queries.db")


@pytest.fixture
def jobs_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for job execution storage tests."""
    return str(tmp_path / "jobs.db")


@pytest.fixture
def request_store() -> InMemoryEventStorage:
    return InMemoryEventStorage()


@pytest.fixture
def query_store() -> InMemoryEventStorage:
    return InMemoryEventStorage()


@pytest.fixture
def job_store() -> InMemoryJobExecutionStorage:
    return InMemoryJobExecutionStorage()


@pytest.fixture
def make_request() -> Callable[..., RequestEvent]:
    """Factory for request events with sensible defaults.

    ``offset`` is seconds after T0.
    """

    def _make(
        offset: float = 0,
        route: str = "/api/games",
        method: str = "GET",
        status_code: int = 200,
        duration_ms: int = 50,
        **kwargs: Any,
    ) -> RequestEvent:
        return RequestEvent(
            timestamp=T0 + offset,
            route=route,
            method=method,
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_query() -> Callable[..., QueryEvent]:
    """Factory for query events; ``slow`` follows the 100 ms threshold by default."""

    def _make(
        offset: float = 0,
        model: str = "Game",
        action: str = "findMany",
        duration_ms: int = 10,
        **kwargs: Any,
    ) -> QueryEvent:
        kwargs.setdefault("slow", duration_ms >= 100)
        return QueryEvent(
            timestamp=T0 + offset,
            model=model,
            action=action,
            duration_ms=duration_ms,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_execution() -> Callable[..., JobExecution]:
    """Factory for job executions; ``offset`` is seconds after T0."""
    counter = iter(range(1_000_000))

    def _make(
        job_name: str = "daily-challenge",
        status: JobStatus = JobStatus.SUCCESS,
        offset: float = 0,
        duration_ms: int | None = 1000,
        **kwargs: Any,
    ) -> JobExecution:
        running = status == JobStatus.RUNNING
        return JobExecution(
            execution_id=kwargs.pop("execution_id", f"exec-{next(counter)}"),
            job_name=job_name,
            status=status,
            started_at=T0 + offset,
            completed_at=None if running else T0 + offset + 1,
            duration_ms=None if running else duration_ms,
            **kwargs,
        )

    return _make


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""
    from opslens.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts."""
    from opslens.adapters.frameworks.asgi import Scope

    def _scope(
        method: str = "GET",
        path: str = "/test",
        headers: list[tuple[bytes, bytes]] | None = None,
    ) -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": b"",
            "headers": headers or [],
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""

    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_receive():
    async def receive() -> dict[str, object]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return receive


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            async with asgi_test_client(app) as client:
                response = await client.get("/endpoint")
    """

    def _get_client(app):
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
