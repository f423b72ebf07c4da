"""
app/routers/webhooks.py — WhatsApp Cloud API webhook
GET: subscription handshake. POST: inbound messages and delivery statuses,
logged and acknowledged immediately.
"""

import json
import secrets
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from loguru import logger

from app.config import get_settings
from app.core import logging as app_logging
from app.core.rate_limiter import RATE_LIMITS, limiter
from app.services.webhook_parser import parse_webhook, verify_signature

router = APIRouter()
settings = get_settings()


@router.get("/whatsapp", response_class=PlainTextResponse)
@limiter.limit(RATE_LIMITS["webhook"])
async def verify_webhook(
    request: Request,
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
) -> PlainTextResponse:
    """Meta calls this once when the webhook URL is registered."""
    if not settings.whatsapp_verify_token:
        logger.error("WHATSAPP_VERIFY_TOKEN is not set; cannot verify webhook.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook verify token not configured",
        )
    if (
        mode == "subscribe"
        and token
        and secrets.compare_digest(token, settings.whatsapp_verify_token)
    ):
        logger.info("WhatsApp webhook verified.")
        return PlainTextResponse(challenge or "", status_code=status.HTTP_200_OK)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@router.post("/whatsapp")
@limiter.limit(RATE_LIMITS["webhook"])
async def receive_webhook(request: Request) -> dict[str, Any]:
    raw_body = await request.body()

    if settings.whatsapp_app_secret:
        signature = request.headers.get("x-hub-signature-256")
        if not verify_signature(raw_body, signature, settings.whatsapp_app_secret):
            logger.error("Invalid WhatsApp webhook signature.")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        # Acknowledge anyway so Meta does not keep redelivering garbage
        logger.warning(f"Unparseable WhatsApp webhook body: {exc}")
        return {"status": "ok"}

    messages, statuses = parse_webhook(payload)
    for message in messages:
        app_logging.log_webhook_event(
            "message", message.sender, message.message_type, text=message.text
        )
    for item in statuses:
        app_logging.log_webhook_event("status", item.recipient, status=item.status)
        if item.errors:
            logger.warning(f"Delivery errors for {item.message_id}: {item.errors}")

    return {"status": "ok"}
