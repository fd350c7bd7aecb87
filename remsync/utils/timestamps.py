# remsync Timestamp Utilities
# Client modification times are epoch milliseconds rendered as strings

import time
from datetime import datetime, timezone


def now_millis() -> str:
    """Get the current time as epoch milliseconds, as a string."""
    return str(int(time.time() * 1000))


def format_millis(value: str, fmt: str = "%Y-%m-%d %H:%M") -> str:
    """
    Render an epoch-milliseconds string for display.

    Returns the raw value unchanged if it isn't a number.
    """
    try:
        seconds = int(value) / 1000
    except (TypeError, ValueError):
        return value or ""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(fmt)
