"""Wall-clock helpers.

Cache entries and rate-limit state persist absolute epoch-millisecond
timestamps, so every time-dependent component takes a ``Clock`` callable
and defaults to :func:`now_ms`.  Tests pass a fake clock instead.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
