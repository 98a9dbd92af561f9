from __future__ import annotations

import time
from datetime import datetime

from zoneinfo import ZoneInfo

NY = ZoneInfo("America/New_York")

# --- clock helpers ---

def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()

def monotonic_s() -> float:
    """Monotonic seconds, for intervals and cooldowns."""
    return time.monotonic()

def local_now(tz_name: str | None = None) -> datetime:
    """Aware 'now' in the reference market timezone (NY by default)."""
    tz = ZoneInfo(tz_name) if tz_name else NY
    return datetime.now(tz=tz)
