"""
app/utils/timezone.py — UTC time helpers
Tracker state is kept as epoch seconds; API responses and stored leads use
timezone-aware UTC datetimes.
"""
from __future__ import annotations

import math
import time
from datetime import datetime
from typing import Optional

import pytz

UTC = pytz.utc


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def epoch_to_utc(epoch_seconds: float) -> datetime:
    """Convert epoch seconds to a timezone-aware UTC datetime."""
    return datetime.fromtimestamp(epoch_seconds, tz=UTC)


def minutes_until(epoch_seconds: float, now: Optional[float] = None) -> int:
    """Whole minutes (rounded up, at least 1) until the given instant."""
    if now is None:
        now = time.time()
    return max(1, math.ceil((epoch_seconds - now) / 60))
