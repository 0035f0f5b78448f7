"""Helper functions for creating event records."""

import time

from opslens.core.context import current_request_id
from opslens.core.models import SLOW_QUERY_THRESHOLD_MS, QueryEvent, RequestEvent

ADMIN_ROUTE_PREFIX = "/api/admin"

# Stored messages are truncated to bound row size.
MAX_ERROR_MESSAGE_LENGTH = 1000


def _truncate(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


def request_event(
    route: str,
    method: str,
    status_code: int,
    duration_ms: int,
    request_id: str = "",
    user_id: str | None = None,
    error_code: str | None = None,
    error_message: str | None = None,
) -> RequestEvent:
    """Create a request event stamped with the current time.

    Args:
        route: Request path (e.g., "/api/games")
        method: HTTP method
        status_code: Response status code
        duration_ms: Handling time in milliseconds
        request_id: Optional correlation id
        user_id: Optional authenticated user
        error_code: Optional machine-readable error code
        error_message: Optional error text, truncated to 1000 characters

    Returns:
        RequestEvent with current timestamp and admin-route flag derived
        from the route
    """
    return RequestEvent(
        timestamp=time.time(),
        route=route,
        method=method.upper(),
        status_code=status_code,
        duration_ms=duration_ms,
        request_id=request_id,
        user_id=user_id,
        is_admin_route=route.startswith(ADMIN_ROUTE_PREFIX),
        error_code=error_code,
        error_message=_truncate(error_message, MAX_ERROR_MESSAGE_LENGTH),
    )


def query_event(
    model: str,
    action: str,
    duration_ms: int,
    success: bool = True,
    request_id: str | None = None,
    error: str | None = None,
    record_count: int | None = None,
    slow_threshold_ms: int = SLOW_QUERY_THRESHOLD_MS,
) -> QueryEvent:
    """Create a query event stamped with the current time.

    The slow flag is fixed here, at write time, and never recomputed.

    Args:
        model: Data model name
        action: Operation name
        duration_ms: Execution time in milliseconds
        success: Whether the query completed without raising
        request_id: Correlation id of the enclosing request; defaults to
            the id bound by the request middleware, if any
        error: Optional error text
        record_count: Optional number of records returned or affected
        slow_threshold_ms: Duration at which a query counts as slow

    Returns:
        QueryEvent with current timestamp
    """
    return QueryEvent(
        timestamp=time.time(),
        model=model,
        action=action,
        duration_ms=duration_ms,
        success=success,
        slow=duration_ms >= slow_threshold_ms,
        request_id=request_id if request_id is not None else current_request_id(),
        error=_truncate(error, MAX_ERROR_MESSAGE_LENGTH),
        record_count=record_count,
    )
