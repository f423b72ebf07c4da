"""
app/main.py — FastAPI application entry point
Includes: lifespan management (logging, env validation, attempt-tracker sweeper),
          CORS, rate limiting, security headers, ping keep-alive endpoint.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.clients.json_store import StorageCorruptError
from app.config import get_settings
from app.core.logging import log_error, setup_logging
from app.core.rate_limiter import RATE_LIMITS, build_sweeper, limiter
from app.routers import api, auth, leads, webhooks

settings = get_settings()

VERSION = "1.0.0"


# ──────────────────────────────────────────────────────────────────────────────
# Application Lifespan
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan: startup → yield → shutdown.
    Startup: logging, env validation, start the tracker sweeper thread.
    Shutdown: stop and join the sweeper.
    """
    setup_logging(settings.log_level)
    logger.info("Marketing site API starting up...")

    _validate_env()

    sweeper = build_sweeper()
    sweeper.start()
    app.state.sweeper = sweeper

    logger.info("Startup complete.")
    try:
        yield
    finally:
        sweeper.stop()
        logger.info("Shutting down marketing site API.")


def _validate_env() -> None:
    """
    Report missing credentials loudly at startup.
    The app still starts; affected features fail closed.
    """
    required = [
        ("admin_user", "ADMIN_USER"),
        ("admin_pass", "ADMIN_PASS"),
        ("whatsapp_phone_number_id", "WHATSAPP_PHONE_NUMBER_ID"),
        ("whatsapp_access_token", "WHATSAPP_ACCESS_TOKEN"),
        ("whatsapp_admin_phone", "WHATSAPP_ADMIN_PHONE"),
        ("whatsapp_verify_token", "WHATSAPP_VERIFY_TOKEN"),
    ]
    missing = []
    for attr, env_name in required:
        val = getattr(settings, attr, None)
        if not val or val in ("change-me-immediately", "your-token-here"):
            missing.append(env_name)

    if missing:
        logger.critical(f"Missing or placeholder env vars: {', '.join(missing)}")
        logger.warning("App will start but affected features will be unavailable until credentials are set.")


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Marketing Site API",
    description=(
        "Lead capture with WhatsApp notifications, admin lead management, "
        "and brute-force protected admin login."
    ),
    version=VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url=None,
    lifespan=lifespan,
)

# ── Rate limiting (fastapi/slowapi) ──────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded,
    lambda req, exc: JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded. Slow down."},
    ),
)
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(StorageCorruptError)
async def storage_corrupt_handler(request: Request, exc: StorageCorruptError) -> JSONResponse:
    # Fail closed: a damaged data file is never read as empty or overwritten
    log_error("storage", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Stored data is unreadable"})


# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [settings.site_url],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


# ── Security headers middleware ───────────────────────────────────────────────
@app.middleware("http")
async def add_security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
    return response


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(api.router, prefix="/api", tags=["health"])
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(leads.router, prefix="/api/leads", tags=["leads"])
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])


# ── Ping keep-alive endpoint ──────────────────────────────────────────────────
@app.get("/api/ping", tags=["health"])
@limiter.limit(RATE_LIMITS["ping"])
async def ping(request: Request):
    """Uptime monitor target. Does NOT call any external services."""
    return {"status": "ok", "version": VERSION}
