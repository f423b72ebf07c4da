"""
app/services/webhook_parser.py — WhatsApp Cloud API webhook payload parsing
Meta delivers `entry[].changes[].value` objects holding `messages[]` and/or
`statuses[]`. Anything malformed is skipped, never raised.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError

from app.models import WebhookMessage, WebhookStatus

# Placeholder text for message types that carry no caption
_MEDIA_PLACEHOLDERS = {
    "audio": "Audio message",
    "video": "Video message",
    "sticker": "Sticker",
    "image": "Image",
}


def verify_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """Check X-Hub-Signature-256 ("sha256=<hex hmac of body>")."""
    if not secret or not signature:
        return False
    expected = "sha256=" + hmac.new(
        secret.encode("utf-8"), payload, hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def extract_message(message: Any) -> Optional[WebhookMessage]:
    """Summarise one inbound message. Returns None if it is unusable."""
    if not isinstance(message, dict) or not message.get("from"):
        logger.warning("Skipping webhook message without sender.")
        return None

    msg_type = _as_text(message.get("type") or "text").lower()
    body = message.get(msg_type) if isinstance(message.get(msg_type), dict) else {}
    text = ""
    media_id: Optional[str] = None

    if msg_type == "text":
        text = _as_text(body.get("body"))
    elif msg_type in ("image", "video", "audio", "sticker", "document"):
        media_id = _as_text(body.get("id")) or None
        text = _as_text(body.get("caption") or body.get("filename"))
        if not text:
            text = _MEDIA_PLACEHOLDERS.get(msg_type, "Document")
    elif msg_type == "interactive":
        reply = body.get("button_reply") or body.get("list_reply")
        if not isinstance(reply, dict):
            reply = {}
        text = _as_text(reply.get("title"))
    elif msg_type == "button":
        text = _as_text(body.get("text"))
    elif msg_type == "reaction":
        text = _as_text(body.get("emoji"))
    elif msg_type == "location":
        name = body.get("name") or body.get("address")
        coords = f"{body.get('latitude')},{body.get('longitude')}"
        text = f"{name} ({coords})" if name else coords
    else:
        text = f"Unsupported message type: {msg_type}"

    context = message.get("context") if isinstance(message.get("context"), dict) else {}
    return WebhookMessage(
        sender=_as_text(message["from"]),
        message_id=_as_text(message.get("id")) or None,
        message_type=msg_type,
        text=text,
        media_id=media_id,
        timestamp=_as_text(message.get("timestamp")) or None,
        context=context,
    )


def extract_status(item: Any) -> Optional[WebhookStatus]:
    if not isinstance(item, dict) or not item.get("id") or not item.get("status"):
        return None
    errors = item.get("errors") if isinstance(item.get("errors"), list) else []
    return WebhookStatus(
        message_id=_as_text(item["id"]),
        status=_as_text(item["status"]),
        recipient=_as_text(item.get("recipient_id")) or None,
        timestamp=_as_text(item.get("timestamp")) or None,
        errors=[e for e in errors if isinstance(e, dict)],
    )


def parse_webhook(payload: Any) -> tuple[list[WebhookMessage], list[WebhookStatus]]:
    """Flatten a webhook delivery into messages and status updates."""
    messages: list[WebhookMessage] = []
    statuses: list[WebhookStatus] = []
    if not isinstance(payload, dict):
        return messages, statuses

    for entry in _as_list(payload.get("entry")):
        if not isinstance(entry, dict):
            continue
        for change in _as_list(entry.get("changes")):
            value = change.get("value") if isinstance(change, dict) else None
            if not isinstance(value, dict):
                continue
            for raw in _as_list(value.get("messages")):
                try:
                    parsed = extract_message(raw)
                except ValidationError as exc:
                    logger.warning(f"Skipping malformed webhook message: {exc.error_count()} error(s)")
                    continue
                if parsed:
                    messages.append(parsed)
            for raw in _as_list(value.get("statuses")):
                try:
                    parsed_status = extract_status(raw)
                except ValidationError as exc:
                    logger.warning(f"Skipping malformed webhook status: {exc.error_count()} error(s)")
                    continue
                if parsed_status:
                    statuses.append(parsed_status)

    return messages, statuses
