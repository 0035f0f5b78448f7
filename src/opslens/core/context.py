"""Request correlation context.

The ASGI middleware binds the current request id here so that query events
created while the request is being handled can carry the same id.
"""

from contextvars import ContextVar, Token

_request_id: ContextVar[str | None] = ContextVar("opslens_request_id", default=None)


def current_request_id() -> str | None:
    """Return the id of the request being handled, if any."""
    return _request_id.get()


def bind_request_id(request_id: str) -> Token[str | None]:
    """Bind a request id to the current context."""
    return _request_id.set(request_id)


def reset_request_id(token: Token[str | None]) -> None:
    """Restore the binding that was active before bind_request_id()."""
    _request_id.reset(token)
