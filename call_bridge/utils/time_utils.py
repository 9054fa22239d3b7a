from __future__ import annotations

import time
from datetime import datetime, timezone


class MonotonicClock:
    """Wall-clock and monotonic time helpers.

    - Wall-clock time is for logging and file names.
    - Monotonic time is for deadlines and elapsed durations.
    """

    @staticmethod
    def now_ms() -> int:
        """Return monotonic time in milliseconds."""
        return int(time.monotonic() * 1000)

    @staticmethod
    def elapsed_ms_from(start_ms: int) -> int:
        """Return elapsed milliseconds since a value returned by now_ms()."""
        return MonotonicClock.now_ms() - start_ms

    @staticmethod
    def utc_stamp() -> str:
        """Return a compact UTC timestamp suitable for file names."""
        return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


__all__ = ["MonotonicClock"]
