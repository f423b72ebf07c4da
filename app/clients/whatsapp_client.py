"""
app/clients/whatsapp_client.py — WhatsApp Cloud API client
Sends lead notifications to the admin's WhatsApp number.
Never raises to callers: every outcome is a WhatsAppSendResult.
"""
from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Any, Iterable, Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape
from loguru import logger

from app.config import get_settings
from app.core import logging as app_logging
from app.models import Lead, WhatsAppSendResult

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

# ── Graph API error codes with a known remedy ─────────────────────────────────
ERROR_INVALID_TOKEN = 190
ERROR_INVALID_PARAMETER = 100
ERROR_PERMISSION_DENIED = 10
ERROR_OUTSIDE_24H_WINDOW = 131047

_ERROR_MESSAGES = {
    ERROR_INVALID_TOKEN: (
        "Invalid access token. Check WHATSAPP_ACCESS_TOKEN; temporary tokens "
        "expire after 24 hours."
    ),
    ERROR_INVALID_PARAMETER: (
        "Invalid parameter. Check WHATSAPP_PHONE_NUMBER_ID and the recipient "
        "phone number format."
    ),
    ERROR_PERMISSION_DENIED: (
        "Permission denied. The access token lacks the "
        "'whatsapp_business_messaging' permission."
    ),
    ERROR_OUTSIDE_24H_WINDOW: (
        "Message outside 24-hour window. The recipient must message the "
        "business number first, or a pre-approved template must be used."
    ),
}


def _get_jinja_env() -> Environment:
    """Build Jinja2 environment for message templates."""
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Formatting
# ──────────────────────────────────────────────────────────────────────────────

def normalize_phone(raw: str) -> str:
    """Keep digits and '+', and make sure the number is in +E.164 form."""
    digits = re.sub(r"[^\d+]", "", raw)
    return digits if digits.startswith("+") else f"+{digits}"


def format_lead_notification(lead: Lead) -> str:
    """Render the admin notification text for a new lead."""
    settings = get_settings()
    limit = settings.lead_message_preview_chars
    message = lead.message or ""
    if len(message) > limit:
        message = message[:limit] + "..."

    template = _get_jinja_env().get_template("lead_notification.txt")
    return template.render(
        lead=lead,
        message=message,
        dashboard_url=f"{settings.site_url.rstrip('/')}/admin/leads",
    )


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def interpret_error(payload: Any) -> WhatsAppSendResult:
    """Map a Graph API error body to a failed send result."""
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        # e.g. {"error": "OAuthException"} or a non-object body
        error = {"message": error} if isinstance(error, str) else {}
    code = _as_int(error.get("code"))
    subcode = _as_int(error.get("error_subcode"))

    if ERROR_OUTSIDE_24H_WINDOW in (code, subcode):
        known = _ERROR_MESSAGES[ERROR_OUTSIDE_24H_WINDOW]
    else:
        known = _ERROR_MESSAGES.get(code)
    api_message = error.get("message")

    return WhatsAppSendResult(
        success=False,
        error=known or (str(api_message) if api_message else "Failed to send WhatsApp message"),
        error_code=code,
        error_subcode=subcode,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Sending
# ──────────────────────────────────────────────────────────────────────────────

def _message_id(data: Any) -> Optional[str]:
    messages = data.get("messages") if isinstance(data, dict) else None
    if not isinstance(messages, list) or not messages or not isinstance(messages[0], dict):
        return None
    message_id = messages[0].get("id")
    return str(message_id) if message_id is not None else None


def _post_message(
    payload: dict[str, Any],
    client: Optional[httpx.Client] = None,
) -> WhatsAppSendResult:
    settings = get_settings()
    if not settings.whatsapp_configured:
        logger.error("WhatsApp credentials not configured")
        return WhatsAppSendResult(
            success=False,
            error=(
                "WhatsApp credentials not configured. Set WHATSAPP_PHONE_NUMBER_ID "
                "and WHATSAPP_ACCESS_TOKEN."
            ),
        )

    headers = {
        "Authorization": f"Bearer {settings.whatsapp_access_token.strip()}",
        "Content-Type": "application/json",
    }
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=settings.whatsapp_timeout_seconds)

    start = time.monotonic()
    result = WhatsAppSendResult(success=False, error="Failed to send WhatsApp message")
    try:
        for attempt in range(settings.whatsapp_max_retries):
            try:
                response = client.post(
                    settings.whatsapp_messages_url, json=payload, headers=headers
                )
            except httpx.TransportError as exc:
                logger.warning(f"WhatsApp send attempt {attempt + 1} failed: {exc}")
                result = WhatsAppSendResult(success=False, error=str(exc))
                if attempt < settings.whatsapp_max_retries - 1:
                    time.sleep(2 ** attempt)
                continue

            try:
                data = response.json()
            except ValueError:
                data = {}

            if response.is_success:
                result = WhatsAppSendResult(success=True, message_id=_message_id(data))
            else:
                result = interpret_error(data)
            break
    finally:
        if owns_client:
            client.close()

    app_logging.log_whatsapp_send(
        to=payload.get("to", ""),
        success=result.success,
        latency_ms=(time.monotonic() - start) * 1000,
        message_id=result.message_id,
        error_code=result.error_code,
        error=result.error,
    )
    return result


def send_text_message(
    phone_number: str,
    body: str,
    client: Optional[httpx.Client] = None,
) -> WhatsAppSendResult:
    """Send a free-form text message (only delivered inside the 24h window)."""
    payload = {
        "messaging_product": "whatsapp",
        "to": normalize_phone(phone_number),
        "type": "text",
        "text": {"body": body},
    }
    return _post_message(payload, client)


def send_template_message(
    phone_number: str,
    template_name: str,
    language_code: str = "en",
    parameters: Iterable[str] = (),
    client: Optional[httpx.Client] = None,
) -> WhatsAppSendResult:
    """Send a pre-approved template message."""
    template: dict[str, Any] = {
        "name": template_name,
        "language": {"code": language_code},
    }
    params = list(parameters)
    if params:
        template["components"] = [{
            "type": "body",
            "parameters": [{"type": "text", "text": p} for p in params],
        }]
    payload = {
        "messaging_product": "whatsapp",
        "to": normalize_phone(phone_number),
        "type": "template",
        "template": template,
    }
    return _post_message(payload, client)
