"""Time helpers."""

from __future__ import annotations

import threading
import time

_last_ms = 0
_lock = threading.Lock()


def now_ms() -> int:
    """Return current timestamp in milliseconds."""
    return int(time.time() * 1000)


def monotonic_ms() -> int:
    """Return a millisecond timestamp strictly greater than any previously returned.

    Posts are keyed by creation time, so two posts written in the same
    millisecond by this process must still get distinct keys.
    """
    global _last_ms
    with _lock:
        value = max(now_ms(), _last_ms + 1)
        _last_ms = value
        return value


__all__ = ["now_ms", "monotonic_ms"]
