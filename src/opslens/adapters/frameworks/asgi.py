"""ASGI middleware that records request events.

Works with any ASGI server or framework (uvicorn, Starlette, FastAPI)
without depending on one of them.
"""

import random
import time
import uuid
from collections.abc import Callable, Coroutine, Sequence
from typing import Any

from opslens.core.context import bind_request_id, reset_request_id
from opslens.core.events import request_event
from opslens.core.logs import log_exception
from opslens.core.models import SLOW_REQUEST_THRESHOLD_MS
from opslens.core.ports import EventStoragePort

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

DEFAULT_EXCLUDE_ROUTES = (
    "/api/health",
    "/api/admin/api-metrics",
    "/api/admin/db-metrics",
    "/api/admin/perf-metrics",
    "/api/admin/ops-metrics",
)

UNHANDLED_ERROR = "UNHANDLED_ERROR"
MAX_ERROR_MESSAGE_LENGTH = 1000


def _header(scope: Scope, name: str) -> str | None:
    """Return a header value from an ASGI scope or response, case-insensitive."""
    wanted = name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for key, value in headers:
        if key.lower() == wanted:
            return value.decode("utf-8", errors="replace")
    return None


def _extract_request_id(scope: Scope, header_name: str) -> str:
    """Return the incoming request id header, or a new UUID."""
    # @tra: Adapter.ASGI.Middleware.RequestId.Extract
    return _header(scope, header_name) or str(uuid.uuid4())


def route_excluded(route: str, exclude_routes: Sequence[str]) -> bool:
    """True when route equals an excluded route or lies below one."""
    return any(route == r or route.startswith(r + "/") for r in exclude_routes)


def should_record(
    status_code: int,
    duration_ms: int,
    sample_rate: float,
    draw: Callable[[], float] = random.random,
) -> bool:
    """Decide whether a finished request is stored.

    Errors and slow requests are always kept; fast successful requests are
    kept with probability ``sample_rate``.
    """
    if status_code >= 400:
        return True
    if duration_ms >= SLOW_REQUEST_THRESHOLD_MS:
        return True
    return draw() < sample_rate


# @tra: Adapter.ASGI.Middleware.Init
# @tra: Adapter.ASGI.Middleware.Interface
# @tra: Adapter.ASGI.Middleware.Passthrough
class RequestEventMiddleware:
    """ASGI middleware that times HTTP requests and stores RequestEvents.

    Non-HTTP scopes pass straight through. The wrapped application's
    response is never changed: a failing store write is logged and
    dropped, and an exception raised by the application is recorded as a
    500 and re-raised.
    """

    def __init__(
        self,
        app: ASGIApp,
        event_storage: EventStoragePort,
        exclude_routes: Sequence[str] = DEFAULT_EXCLUDE_ROUTES,
        fast_request_sample_rate: float = 0.1,
        request_id_header: str = "X-Request-ID",
        user_id_header: str = "X-User-ID",
        draw: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            event_storage: Store receiving the request events.
            exclude_routes: Routes never recorded; a route also covers
                everything below it (``/api/health`` covers
                ``/api/health/db``).
            fast_request_sample_rate: Fraction of fast, successful requests
                to record, between 0 and 1.
            request_id_header: Header carrying an incoming request id.
            user_id_header: Response header carrying the authenticated user.
            draw: Source of uniform random numbers in [0, 1).
        """
        if not 0.0 <= fast_request_sample_rate <= 1.0:
            raise ValueError(
                f"fast_request_sample_rate must be within [0, 1], got {fast_request_sample_rate}"
            )
        self.app = app
        self.event_storage = event_storage
        self.exclude_routes = tuple(exclude_routes)
        self.fast_request_sample_rate = fast_request_sample_rate
        self.request_id_header = request_id_header
        self.user_id_header = user_id_header
        self._draw = draw

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI callable interface that processes requests through the wrapped app."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        request_id = _extract_request_id(scope, self.request_id_header)
        captured: dict[str, Any] = {"status": None, "user_id": None, "exception": None}

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
                captured["user_id"] = _header(message, self.user_id_header)
            await send(message)

        token = bind_request_id(request_id)
        try:
            await self.app(scope, receive, wrapped_send)
        except Exception as e:
            captured["exception"] = e
            captured["status"] = 500
        finally:
            reset_request_id(token)

        duration_ms = round((time.perf_counter() - start_time) * 1000)
        await self._record(scope, request_id, captured, duration_ms)
        if captured["exception"] is not None:
            raise captured["exception"]

    async def _record(
        self,
        scope: Scope,
        request_id: str,
        captured: dict[str, Any],
        duration_ms: int,
    ) -> None:
        route = scope["path"]
        if route_excluded(route, self.exclude_routes):
            return
        status_code = captured["status"] or 500
        exc = captured["exception"]
        if exc is None and not should_record(
            status_code, duration_ms, self.fast_request_sample_rate, self._draw
        ):
            return
        event = request_event(
            route=route,
            method=scope["method"],
            status_code=status_code,
            duration_ms=duration_ms,
            request_id=request_id,
            user_id=captured["user_id"],
            error_code=UNHANDLED_ERROR if exc is not None else None,
            error_message=str(exc)[:MAX_ERROR_MESSAGE_LENGTH] if exc is not None else None,
        )
        try:
            await self.event_storage.write(event)
        except Exception:
            log_exception("Failed to store request event", route=route, request_id=request_id)
