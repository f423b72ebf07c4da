"""
app/core/auth.py — Admin authentication guarded by the login attempt tracker
Credentials are checked against ADMIN_USER / ADMIN_PASS in constant time.
Every check goes through the login tracker first; a success clears the
identifier's standing, repeated failures escalate to a timed lockout.
"""
from __future__ import annotations

import math
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.config import get_settings
from app.core.attempt_tracker import AttemptDecision
from app.core.rate_limiter import get_login_tracker
from app.utils.network import get_client_ip, login_identifier
from app.utils.timezone import epoch_to_utc, minutes_until

security = HTTPBasic(auto_error=False)
settings = get_settings()


def _credentials_match(username: str, password: str) -> bool:
    if not settings.admin_user or not settings.admin_pass:
        return False
    correct_username = secrets.compare_digest(
        username.strip().lower().encode("utf-8"),
        settings.admin_user.strip().lower().encode("utf-8"),
    )
    correct_password = secrets.compare_digest(
        password.encode("utf-8"),
        settings.admin_pass.encode("utf-8"),
    )
    return correct_username and correct_password


def soft_retry_after(decision: AttemptDecision, window_seconds: float) -> int:
    """Seconds left in the caller's window; the full window if unknown."""
    if decision.window_reset_at is None:
        return int(window_seconds)
    return max(1, decision.retry_after())


def too_many_attempts(decision: AttemptDecision, window_seconds: float) -> HTTPException:
    """Build the 429 raised for a rejected attempt."""
    if decision.locked_until is not None:
        minutes_left = minutes_until(decision.locked_until)
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": (
                    f"Too many failed attempts. Account locked for "
                    f"{minutes_left} minute(s)."
                ),
                "locked_until": epoch_to_utc(decision.locked_until).isoformat(),
            },
            headers={"Retry-After": str(decision.retry_after())},
        )
    retry_after = soft_retry_after(decision, window_seconds)
    window_minutes = max(1, math.ceil(retry_after / 60))
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Too many attempts. Please try again in {window_minutes} minutes.",
        headers={"Retry-After": str(retry_after)},
    )


# ──────────────────────────────────────────────────────────────────────────────
# Credential check, shared by Basic Auth and the JSON login endpoint
# ──────────────────────────────────────────────────────────────────────────────

def authenticate_admin(username: str, password: str, client_ip: str) -> str:
    """
    Validate admin credentials for a client.
    Returns the username on success.
    Raises HTTPException 429 when the identifier is limited or locked,
    401 when the credentials are wrong.
    """
    tracker = get_login_tracker()
    identifier = login_identifier(username, client_ip)

    decision = tracker.check_and_record(identifier)
    if not decision.allowed:
        raise too_many_attempts(decision, tracker.policy.window_seconds)

    if not _credentials_match(username, password):
        # Generic message: never reveal whether the account exists
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={
                "WWW-Authenticate": "Basic",
                "X-Attempts-Remaining": str(decision.remaining),
            },
        )

    tracker.reset_attempts(identifier)
    return username


# ──────────────────────────────────────────────────────────────────────────────
# HTTP Basic Auth dependency for admin endpoints
# ──────────────────────────────────────────────────────────────────────────────

async def verify_admin(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(security),
) -> str:
    """Validate HTTP Basic Auth credentials for admin endpoints."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Basic Auth credentials required",
            headers={"WWW-Authenticate": "Basic"},
        )
    client_ip = get_client_ip(request, settings.trust_forwarded_for)
    return authenticate_admin(credentials.username, credentials.password, client_ip)
