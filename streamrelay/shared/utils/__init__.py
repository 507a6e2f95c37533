"""
Utility helpers for shared packages.
"""

import time
from datetime import datetime, timezone

utc_now = lambda: datetime.now(timezone.utc)
utc_now_ms = lambda: int(time.time() * 1000)

__all__ = [
    "utc_now",
    "utc_now_ms",
]
