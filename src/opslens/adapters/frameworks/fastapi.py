"""FastAPI adapter for the metrics endpoints."""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from opslens.core.buckets import OPS_WINDOWS, Window
from opslens.core.encoding.reports import Report, report_to_dict
from opslens.core.exceptions import InvalidQueryError, InvalidWindowError, StoreUnavailableError
from opslens.core.service import TelemetryQuery, TelemetryQueryService


async def _respond(
    params: Mapping[str, Any],
    dimension_param: str,
    fetch: Callable[[TelemetryQuery], Awaitable[Report]],
    allowed_windows: Sequence[Window] | None = None,
) -> JSONResponse:
    """Parse the query, run it and map engine errors to HTTP statuses."""
    try:
        query = TelemetryQuery.from_params(params, dimension_param, allowed_windows)
        report = await fetch(query)
    except (InvalidWindowError, InvalidQueryError) as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except StoreUnavailableError as exc:
        return JSONResponse({"error": str(exc)}, status_code=503)
    return JSONResponse(report_to_dict(report))


def create_metrics_router(service: TelemetryQueryService) -> APIRouter:
    """Create a FastAPI router with the dashboard metrics endpoints.

    Endpoints:
        GET /api-metrics: request metrics (``window``, ``route``).
        GET /db-metrics: query metrics (``window``, ``model``, ``slowOnly``).
        GET /perf-metrics: endpoint performance (``window``, ``route``
            prefix, ``minDuration``).
        GET /ops-metrics: job health and API errors (``window``, no
            hourly window).

    Args:
        service: Query service answering the requests.

    Returns:
        APIRouter to mount under an admin prefix of the host application.
    """
    router = APIRouter()

    @router.get("/api-metrics")
    async def get_api_metrics(request: Request) -> JSONResponse:
        """Return request throughput, latency and error rates."""
        return await _respond(request.query_params, "route", service.request_metrics)

    @router.get("/db-metrics")
    async def get_db_metrics(request: Request) -> JSONResponse:
        """Return data-access latency and slow-query statistics."""
        return await _respond(request.query_params, "model", service.query_metrics)

    @router.get("/perf-metrics")
    async def get_perf_metrics(request: Request) -> JSONResponse:
        """Return per-endpoint performance."""
        return await _respond(request.query_params, "route", service.perf_metrics)

    @router.get("/ops-metrics")
    async def get_ops_metrics(request: Request) -> JSONResponse:
        """Return scheduled job health, API errors and overall health."""
        return await _respond(
            request.query_params, "route", service.ops_metrics, OPS_WINDOWS
        )

    return router
