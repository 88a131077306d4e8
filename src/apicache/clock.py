"""Millisecond wall clock used for every stored timestamp.

Components accept a ``clock`` callable so tests can advance time without
sleeping; production code uses :func:`now_ms`.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Return the current time in integer milliseconds since the epoch."""
    return time.time_ns() // 1_000_000
