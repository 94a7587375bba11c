"""Millisecond clock shared by the rate limiters and the scheduler."""
import time
from typing import Callable

Clock = Callable[[], int]


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)
