"""Time windows and epoch-aligned bucketing."""

import math
from collections.abc import Iterable
from enum import Enum

from opslens.core.exceptions import InvalidWindowError
from opslens.core.models import TimeRange

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR


class Window(str, Enum):
    """Caller-selected lookback duration."""

    ONE_HOUR = "1h"
    ONE_DAY = "24h"
    ONE_WEEK = "7d"
    TWO_WEEKS = "14d"
    ONE_MONTH = "30d"

    @property
    def duration(self) -> int:
        """Lookback length in seconds."""
        return _DURATIONS[self]

    @property
    def bucket_width(self) -> int:
        """Bucket width in seconds used for this window's time series."""
        return _BUCKET_WIDTHS[self]


_DURATIONS = {
    Window.ONE_HOUR: HOUR,
    Window.ONE_DAY: DAY,
    Window.ONE_WEEK: 7 * DAY,
    Window.TWO_WEEKS: 14 * DAY,
    Window.ONE_MONTH: 30 * DAY,
}

_BUCKET_WIDTHS = {
    Window.ONE_HOUR: 5 * MINUTE,
    Window.ONE_DAY: HOUR,
    Window.ONE_WEEK: DAY,
    Window.TWO_WEEKS: DAY,
    Window.ONE_MONTH: DAY,
}

# The operational view has no hourly window.
OPS_WINDOWS = (Window.ONE_DAY, Window.ONE_WEEK, Window.TWO_WEEKS, Window.ONE_MONTH)


def parse_window(
    value: "str | Window", allowed: Iterable[Window] | None = None
) -> Window:
    """Parse a window selector.

    Args:
        value: Selector such as "24h", or a Window.
        allowed: Optional subset accepted by the calling surface.

    Raises:
        InvalidWindowError: If the selector is unknown or not allowed.
    """
    permitted = list(allowed) if allowed is not None else list(Window)
    try:
        window = Window(value)
    except ValueError:
        raise InvalidWindowError(value, [w.value for w in permitted]) from None
    if window not in permitted:
        raise InvalidWindowError(value, [w.value for w in permitted])
    return window


def window_bounds(window: Window, now: float) -> TimeRange:
    """Return the closed range [now - window.duration, now]."""
    return TimeRange(start=now - window.duration, end=now)


def bucket_key(timestamp: float, width: int) -> float:
    """Return the start of the epoch-aligned bucket containing ``timestamp``."""
    return float(math.floor(timestamp / width) * width)


def bucket_keys(window_start: float, now: float, width: int) -> list[float]:
    """Generate the bucket start instants covering [window_start, now].

    Keys are aligned to absolute epoch boundaries, so the first key is at or
    before ``window_start`` and the last bucket contains ``now``. A degenerate
    window (``window_start == now``) still yields exactly one bucket.

    Raises:
        ValueError: If width is not positive or window_start is after now.
    """
    if width <= 0:
        raise ValueError(f"bucket width must be positive, got {width}")
    if window_start > now:
        raise ValueError("window_start must not be after now")
    keys = []
    key = bucket_key(window_start, width)
    while key <= now:
        keys.append(key)
        key += width
    return keys
