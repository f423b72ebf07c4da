"""
app/models.py — All Pydantic data schemas
Leads (stored in leads.json), API request/response bodies, WhatsApp results.
"""
from __future__ import annotations

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from app.utils.timezone import utc_now

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _validate_email(value: str) -> str:
    value = value.strip()
    if not _EMAIL_RE.match(value):
        raise ValueError("Invalid email address")
    return value


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class LeadStatus(str, Enum):
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    WON = "WON"
    LOST = "LOST"


# ──────────────────────────────────────────────────────────────────────────────
# Leads
# ──────────────────────────────────────────────────────────────────────────────

class LeadCreate(BaseModel):
    """Public contact-form submission."""

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=255)
    phone: str = Field(min_length=1, max_length=50)
    business: Optional[str] = Field(default=None, max_length=200)
    budget: Optional[str] = Field(default=None, max_length=100)
    message: Optional[str] = Field(default=None, max_length=2000)
    # Honeypot: hidden in the form, only bots fill it in
    website: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _validate_email(v)

    @property
    def is_bot(self) -> bool:
        return bool(self.website)


class Lead(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    email: str
    phone: str
    business: Optional[str] = None
    budget: Optional[str] = None
    message: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class LeadsFile(BaseModel):
    schema_version: str = "1.0"
    leads: list[Lead] = []


class LeadStatusUpdate(BaseModel):
    status: LeadStatus


class LeadCreatedResponse(BaseModel):
    message: str
    id: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# Admin login
# ──────────────────────────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)


class LoginResponse(BaseModel):
    authenticated: bool
    email: str


# ──────────────────────────────────────────────────────────────────────────────
# WhatsApp
# ──────────────────────────────────────────────────────────────────────────────

class WhatsAppSendResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[int] = None
    error_subcode: Optional[int] = None


class WebhookMessage(BaseModel):
    """Summary of one inbound WhatsApp message."""

    sender: str
    message_id: Optional[str] = None
    message_type: str = "unknown"
    text: str = ""
    media_id: Optional[str] = None
    timestamp: Optional[str] = None
    context: dict[str, Any] = {}


class WebhookStatus(BaseModel):
    """Delivery status update for a message we sent."""

    message_id: str
    status: str
    recipient: Optional[str] = None
    timestamp: Optional[str] = None
    errors: list[dict[str, Any]] = []
