"""Wall-clock helpers shared by the token managers."""

import time
from typing import Callable

# Returns the current time as epoch milliseconds.
Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000
