"""Millisecond wall-clock used for cache timestamps."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current time in epoch milliseconds."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Reads :func:`time.time`.

    Wall-clock time rather than :func:`time.monotonic` because timestamps
    are persisted and compared across process restarts.
    """

    def now_ms(self) -> int:
        return int(time.time() * 1000)


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return SystemClock().now_ms()
