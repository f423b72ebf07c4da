"""
app/core/rate_limiter.py — Request throttling configuration
Two layers:
  * slowapi per-route limits for cheap public endpoints (health, ping, webhooks)
  * AttemptTracker instances for admin login (with lockout) and lead submissions
"""
from __future__ import annotations

from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import get_settings
from app.core.attempt_tracker import AttemptPolicy, AttemptSweeper, AttemptTracker

# Single shared limiter instance, imported by main.py and routers
limiter = Limiter(key_func=get_remote_address)

# ── Coarse per-route limits ───────────────────────────────────────────────────
RATE_LIMITS = {
    # Admin JSON endpoints: generous, already behind Basic Auth + login tracker
    "admin": "60/minute",
    # Meta retries webhook deliveries in bursts
    "webhook": "120/minute",
    "health": "30/minute",
    "ping": "60/minute",
}


# ──────────────────────────────────────────────────────────────────────────────
# Attempt trackers: one per identifier space
# ──────────────────────────────────────────────────────────────────────────────

@lru_cache()
def get_login_tracker() -> AttemptTracker:
    """Tracker for admin credentials, keyed by "account:ip"."""
    settings = get_settings()
    return AttemptTracker(
        "login",
        AttemptPolicy(
            max_attempts=settings.login_max_attempts,
            window_seconds=settings.login_window_seconds,
            lockout_seconds=settings.login_lockout_seconds,
        ),
    )


@lru_cache()
def get_lead_tracker() -> AttemptTracker:
    """Tracker for public lead submissions, keyed by client IP."""
    settings = get_settings()
    return AttemptTracker(
        "lead",
        AttemptPolicy(
            max_attempts=settings.lead_max_submissions,
            window_seconds=settings.lead_window_seconds,
        ),
    )


def build_sweeper() -> AttemptSweeper:
    settings = get_settings()
    return AttemptSweeper(
        [get_login_tracker(), get_lead_tracker()],
        interval_seconds=settings.attempt_sweep_interval_seconds,
    )


def reset_trackers() -> None:
    """Drop both trackers so the next call builds fresh ones."""
    get_login_tracker.cache_clear()
    get_lead_tracker.cache_clear()
