"""Event profiles for each reporting surface."""

from operator import attrgetter

from opslens.core.aggregation import EventProfile
from opslens.core.models import QueryEvent, RequestEvent


def _route(event: RequestEvent) -> tuple[str, ...]:
    return (event.route,)


def _endpoint(event: RequestEvent) -> tuple[str, ...]:
    return (event.method, event.route)


def _operation(event: QueryEvent) -> tuple[str, ...]:
    return (event.model, event.action)


# Requests grouped by route, collecting the methods seen for each.
REQUEST_ROUTE_PROFILE = EventProfile(
    name="route",
    fields=("route",),
    identity=_route,
    sub_dimension=attrgetter("method"),
)

# Requests grouped by method and route.
REQUEST_ENDPOINT_PROFILE = EventProfile(
    name="endpoint",
    fields=("method", "route"),
    identity=_endpoint,
)

# Queries grouped by model and action.
QUERY_OPERATION_PROFILE = EventProfile(
    name="operation",
    fields=("model", "action"),
    identity=_operation,
)
