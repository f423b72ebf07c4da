"""
app/core/logging.py — loguru structured JSON logging setup
Every rate-limit rejection, lockout, lead change, WhatsApp send and webhook
delivery is logged as a single JSON record.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru for structured JSON output to stdout.
    The hosting platform captures stdout; nothing is written to disk.
    """
    # Remove default loguru handler
    logger.remove()

    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,       # loguru built-in JSON serialization
        backtrace=True,
        diagnose=False,       # Never dump locals (credentials) into logs
        colorize=False,
    )


def mask_identifier(identifier: str) -> str:
    """Hide the local part of an e-mail inside a tracker identifier."""
    local, sep, rest = identifier.partition("@")
    if not sep:
        return identifier
    visible = local[:1] if local else ""
    return f"{visible}***@{rest}"


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


def _iso(epoch_seconds: Optional[float]) -> Optional[str]:
    if epoch_seconds is None:
        return None
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


# ──────────────────────────────────────────────────────────────────────────────
# Attempt tracker events
# ──────────────────────────────────────────────────────────────────────────────

def log_attempt_rejected(
    scope: str,
    identifier: str,
    locked_until: Optional[float],
) -> None:
    """Logged for every rejected attempt (soft limit or active lockout)."""
    record = _build_log_record("attempt_tracker", "rejected", {
        "scope": scope,
        "identifier": mask_identifier(identifier),
        "locked_until": _iso(locked_until),
    })
    logger.warning(json.dumps(record))


def log_lockout(scope: str, identifier: str, locked_until: float) -> None:
    """Logged once when an identifier escalates to a timed lockout."""
    record = _build_log_record("attempt_tracker", "lockout", {
        "scope": scope,
        "identifier": mask_identifier(identifier),
        "locked_until": _iso(locked_until),
    })
    logger.warning(json.dumps(record))


def log_sweep(scope: str, evicted: int, remaining: int) -> None:
    record = _build_log_record("attempt_tracker", "sweep", {
        "scope": scope,
        "evicted": evicted,
        "remaining": remaining,
    })
    logger.debug(json.dumps(record))


# ──────────────────────────────────────────────────────────────────────────────
# Lead + WhatsApp events
# ──────────────────────────────────────────────────────────────────────────────

def log_lead_event(
    lead_id: str,
    operation: str,  # create | update_status | delete | honeypot
    status: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    record = _build_log_record("lead_service", operation, {
        "lead_id": lead_id,
        "status": status,
        "error": error,
    })
    logger.info(json.dumps(record))


def log_whatsapp_send(
    to: str,
    success: bool,
    latency_ms: float,
    message_id: Optional[str] = None,
    error_code: Optional[int] = None,
    error: Optional[str] = None,
) -> None:
    """Every WhatsApp Cloud API send is logged, success or not."""
    record = _build_log_record("whatsapp_client", "send_message", {
        "to": to,
        "success": success,
        "latency_ms": round(latency_ms, 2),
        "message_id": message_id,
        "error_code": error_code,
        "error": error,
    })
    if success:
        logger.info(json.dumps(record))
    else:
        logger.error(json.dumps(record))


def log_webhook_event(
    kind: str,  # message | status
    sender: Optional[str],
    message_type: Optional[str] = None,
    text: Optional[str] = None,
    status: Optional[str] = None,
) -> None:
    record = _build_log_record("whatsapp_webhook", kind, {
        "from": sender,
        "message_type": message_type,
        "text": text[:500] if text else text,
        "status": status,
    })
    logger.info(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every unexpected error is logged with full context."""
    tb = traceback.format_exc()
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
