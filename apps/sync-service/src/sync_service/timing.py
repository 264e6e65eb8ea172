"""Wall-clock helpers.

All timestamps exchanged by the sync engine are float milliseconds since the
Unix epoch. Components take a ``TimeSource`` so tests can drive time.
"""

import time
from collections.abc import Callable

TimeSource = Callable[[], float]


def now_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000.0
