"""Logging helpers built on the standard library logging module.

The library only creates loggers under the ``opslens`` namespace; it never
installs handlers unless the application calls ``configure_logging``.
"""

import logging
import sys

ROOT_LOGGER_NAME = "opslens"

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``opslens``.

    Args:
        name: Usually ``__name__``. Names already inside the namespace are
              used as-is.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_logger = get_logger(__name__)


def log_exception(message: str, **attributes: str | int | float | bool) -> None:
    """Log the exception currently being handled at ERROR level.

    Must be called from inside an ``except`` block.

    Args:
        message: Description of what failed
        **attributes: Additional structured fields passed as ``extra``
    """
    _logger.error(message, exc_info=True, extra=attributes)


def configure_logging(level: int | str = logging.INFO) -> logging.Handler:
    """Attach a stderr handler to the ``opslens`` logger.

    Calling it again replaces the handler installed by the previous call.

    Returns:
        The installed handler.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for existing in list(root.handlers):
        if getattr(existing, "_opslens_default", False):
            root.removeHandler(existing)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
    handler._opslens_default = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level)
    return handler
