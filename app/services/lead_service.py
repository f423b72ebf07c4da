"""
app/services/lead_service.py — Lead capture, admin management, WhatsApp notification
Leads are persisted in leads.json through the local JSON store.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger

from app.clients import json_store
from app.clients.whatsapp_client import (
    ERROR_OUTSIDE_24H_WINDOW,
    ERROR_PERMISSION_DENIED,
    format_lead_notification,
    send_text_message,
)
from app.config import get_settings
from app.core import logging as app_logging
from app.models import Lead, LeadCreate, LeadsFile, LeadStatus
from app.utils.timezone import utc_now

LEADS_FILE = "leads.json"


class DuplicateLeadError(Exception):
    """A lead with this e-mail address already exists."""


class LeadNotFoundError(Exception):
    pass


def _load() -> LeadsFile:
    data = json_store.read_json_file(LEADS_FILE)
    return LeadsFile(**(data or {}))


def _save(leads_file: LeadsFile) -> None:
    json_store.write_json_file(LEADS_FILE, leads_file.model_dump(mode="json"))


# ──────────────────────────────────────────────────────────────────────────────
# Public submission
# ──────────────────────────────────────────────────────────────────────────────

def create_lead(submission: LeadCreate) -> Lead:
    """
    Store a new lead with status NEW.
    Raises DuplicateLeadError if the e-mail is already on file.
    """
    email_key = submission.email.lower()
    with json_store.store_lock:
        leads_file = _load()
        if any(existing.email.lower() == email_key for existing in leads_file.leads):
            raise DuplicateLeadError(submission.email)

        lead = Lead(
            name=submission.name,
            email=submission.email,
            phone=submission.phone,
            business=submission.business or None,
            budget=submission.budget or None,
            message=submission.message or None,
        )
        leads_file.leads.append(lead)
        _save(leads_file)

    app_logging.log_lead_event(lead.id, "create", lead.status.value)
    return lead


def notify_new_lead(lead: Lead) -> None:
    """
    Send the WhatsApp notification for a new lead.
    Runs as a background task: failures are logged, never raised.
    """
    settings = get_settings()
    admin_phone = settings.whatsapp_admin_phone
    if not admin_phone:
        logger.warning("WHATSAPP_ADMIN_PHONE is not set. Skipping WhatsApp notification.")
        return

    try:
        result = send_text_message(admin_phone, format_lead_notification(lead))
    except Exception as exc:
        app_logging.log_error("lead_service", "notify_new_lead", exc, {"lead_id": lead.id})
        return

    if result.success:
        logger.info(f"WhatsApp notification sent for lead {lead.id}: {result.message_id}")
        return

    logger.error(f"WhatsApp notification failed for lead {lead.id}: {result.error}")
    if ERROR_OUTSIDE_24H_WINDOW in (result.error_code, result.error_subcode):
        logger.error("The admin number must message the business number first, or use a template.")
    elif result.error_code == ERROR_PERMISSION_DENIED:
        logger.error("Regenerate the access token with 'whatsapp_business_messaging' permission.")


# ──────────────────────────────────────────────────────────────────────────────
# Admin management
# ──────────────────────────────────────────────────────────────────────────────

def list_leads(status: Optional[LeadStatus] = None) -> list[Lead]:
    """Newest first, optionally filtered by status."""
    leads = _load().leads
    if status is not None:
        leads = [lead for lead in leads if lead.status == status]
    # Stable ascending sort then reverse: same-instant leads keep newest-first order
    return list(reversed(sorted(leads, key=lambda lead: lead.created_at)))


def get_lead(lead_id: str) -> Lead:
    for lead in _load().leads:
        if lead.id == lead_id:
            return lead
    raise LeadNotFoundError(lead_id)


def update_lead_status(lead_id: str, status: LeadStatus) -> Lead:
    with json_store.store_lock:
        leads_file = _load()
        for lead in leads_file.leads:
            if lead.id == lead_id:
                lead.status = status
                lead.updated_at = utc_now()
                _save(leads_file)
                app_logging.log_lead_event(lead_id, "update_status", status.value)
                return lead
    raise LeadNotFoundError(lead_id)


def delete_lead(lead_id: str) -> None:
    with json_store.store_lock:
        leads_file = _load()
        remaining = [lead for lead in leads_file.leads if lead.id != lead_id]
        if len(remaining) == len(leads_file.leads):
            raise LeadNotFoundError(lead_id)
        leads_file.leads = remaining
        _save(leads_file)
    app_logging.log_lead_event(lead_id, "delete")
