"""
app/config.py — Pydantic BaseSettings configuration
All values come from environment variables or a local .env file.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8000
    site_url: str = "http://localhost:8000"
    data_dir: str = "data"

    # ── Admin authentication ──────────────────────────────────────────────────
    admin_user: str = ""
    admin_pass: str = ""

    # ── Login attempt tracking (per account + client IP) ──────────────────────
    login_max_attempts: int = 5
    login_window_seconds: int = 15 * 60
    login_lockout_seconds: int = 30 * 60

    # ── Lead submission tracking (per client IP, no lockout tier) ─────────────
    lead_max_submissions: int = 3
    lead_window_seconds: int = 15 * 60

    # ── Sweep of expired tracker records ──────────────────────────────────────
    attempt_sweep_interval_seconds: int = 60 * 60

    # Only enable behind a proxy that sets X-Forwarded-For; otherwise clients
    # could pick their own tracker identifier
    trust_forwarded_for: bool = False

    # ── WhatsApp Cloud API ────────────────────────────────────────────────────
    whatsapp_phone_number_id: str = ""
    whatsapp_access_token: str = ""
    whatsapp_admin_phone: str = ""
    whatsapp_api_version: str = "v21.0"
    whatsapp_graph_url: str = "https://graph.facebook.com"
    whatsapp_verify_token: str = ""
    whatsapp_app_secret: str = ""
    whatsapp_timeout_seconds: float = 10.0
    whatsapp_max_retries: int = 3

    # ── Lead notification ─────────────────────────────────────────────────────
    lead_message_preview_chars: int = 200

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.whatsapp_phone_number_id and self.whatsapp_access_token)

    @property
    def whatsapp_messages_url(self) -> Optional[str]:
        if not self.whatsapp_phone_number_id:
            return None
        return (
            f"{self.whatsapp_graph_url.rstrip('/')}/{self.whatsapp_api_version}"
            f"/{self.whatsapp_phone_number_id}/messages"
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()
