"""Example FastAPI application with the opslens metrics endpoints.

Run with:
    uvicorn examples.fastapi_example:app --reload

Endpoints:
    /api/games                       - sample route, sometimes slow
    /api/games/fail                  - sample route that raises
    /api/admin/api-metrics?window=1h - request throughput, latency, errors
    /api/admin/db-metrics?model=Game - query latency and slow queries
    /api/admin/perf-metrics          - per-endpoint performance
    /api/admin/ops-metrics           - scheduled job health and API errors

Storage:
    Events go to SQLite files in the working directory. Settings can be
    overridden with OPSLENS_* environment variables.
"""

import asyncio
import dataclasses
import random
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from opslens import EngineSettings, JobDefinition, JobExecution, JobStatus
from opslens.adapters.frameworks.asgi import RequestEventMiddleware
from opslens.adapters.frameworks.fastapi import create_metrics_router
from opslens.adapters.storage import (
    SQLiteJobExecutionStorage,
    SQLiteQueryEventStorage,
    SQLiteRequestEventStorage,
)
from opslens.core.events import query_event
from opslens.core.logs import configure_logging, get_logger
from opslens.core.service import TelemetryQueryService

logger = get_logger(__name__)

request_storage = SQLiteRequestEventStorage("requests.db")
query_storage = SQLiteQueryEventStorage("queries.db")
job_storage = SQLiteJobExecutionStorage("jobs.db")

settings = dataclasses.replace(
    EngineSettings.from_env(),
    jobs=(JobDefinition("daily-challenge", "Daily Challenge", schedule="0 0 * * *"),),
)
service = TelemetryQueryService(request_storage, query_storage, job_storage, settings)


async def run_daily_challenge() -> None:
    """Record one execution of a fake scheduled job."""
    execution_id = str(uuid.uuid4())
    started = time.time()
    await job_storage.write(
        JobExecution(execution_id, "daily-challenge", JobStatus.RUNNING, started, triggered_by="startup")
    )
    await asyncio.sleep(0.2)
    status = JobStatus.SUCCESS if random.random() > 0.2 else JobStatus.FAILED
    await job_storage.write(
        JobExecution(
            execution_id,
            "daily-challenge",
            status,
            started,
            completed_at=time.time(),
            duration_ms=round((time.time() - started) * 1000),
            error="upstream timeout" if status == JobStatus.FAILED else None,
            triggered_by="startup",
        )
    )
    logger.info("daily-challenge finished: %s", status.value)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    await run_daily_challenge()
    yield


api = FastAPI(title="opslens example", lifespan=lifespan)
api.include_router(create_metrics_router(service), prefix="/api/admin")


@api.get("/api/games")
async def list_games() -> dict[str, list[str]]:
    """Sample route whose simulated query is occasionally slow."""
    duration = random.choice([5, 20, 150])
    await asyncio.sleep(duration / 1000)
    await query_storage.write(query_event("Game", "findMany", duration, record_count=2))
    return {"games": ["jeopardy-1", "jeopardy-2"]}


@api.get("/api/games/fail")
async def failing_route() -> None:
    raise RuntimeError("Intentional error for demonstration")


app = RequestEventMiddleware(api, request_storage)
