"""
Timestamp Utilities

Log entries carry capture time as integer epoch milliseconds.
"""

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def ms_to_iso(timestamp_ms: int) -> str:
    """
    Render epoch milliseconds as an ISO 8601 UTC string.

    Examples:
        0             -> 1970-01-01T00:00:00+00:00
        1700000000123 -> 2023-11-14T22:13:20.123000+00:00
    """
    return datetime.fromtimestamp(timestamp_ms / 1000, timezone.utc).isoformat()
