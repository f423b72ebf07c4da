"""
app/routers/api.py — Health endpoint
Public, no auth. Reports configuration gaps and tracker sizes.
"""

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.core.rate_limiter import RATE_LIMITS, get_lead_tracker, get_login_tracker, limiter
from app.utils.timezone import utc_now

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET /api/health
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/health")
@limiter.limit(RATE_LIMITS["health"])
async def health_check(request: Request) -> JSONResponse:
    """
    System health check.
    Returns HTTP 200 if healthy, 503 if admin login cannot work.
    Missing WhatsApp credentials only degrade notifications, so they are reported, not fatal.
    """
    s = get_settings()
    checks: dict[str, Any] = {
        "admin_configured": bool(s.admin_user and s.admin_pass),
        "whatsapp_configured": s.whatsapp_configured,
        "whatsapp_admin_phone_set": bool(s.whatsapp_admin_phone),
        "tracked_login_identifiers": len(get_login_tracker()),
        "tracked_lead_identifiers": len(get_lead_tracker()),
    }
    healthy = checks["admin_configured"]

    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "checks": checks,
            "timestamp": utc_now().isoformat(),
        },
    )
