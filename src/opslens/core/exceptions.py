"""Exceptions raised by the telemetry engine."""


class OpslensError(Exception):
    """Base class for all opslens errors."""


class InvalidWindowError(OpslensError, ValueError):
    """Raised for an unrecognized or disallowed window selector."""

    def __init__(self, window: object, allowed: list[str]) -> None:
        self.window = window
        self.allowed = allowed
        super().__init__(
            f"Invalid window {window!r}; expected one of: {', '.join(allowed)}"
        )


class InvalidQueryError(OpslensError, ValueError):
    """Raised when a query parameter other than the window is malformed."""


class StoreUnavailableError(OpslensError):
    """Raised when the event or execution store cannot be read.

    Also raised when a report needs a store the service was built without.
    """

    def __init__(self, store: str, cause: BaseException | str) -> None:
        self.store = store
        super().__init__(f"{store} unavailable: {cause}")
