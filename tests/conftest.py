"""
tests/conftest.py — Shared pytest fixtures
"""
from __future__ import annotations

import os
import tempfile

# Settings are read once at import time; give the app a test environment first
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("ADMIN_USER", "admin@example.com")
os.environ.setdefault("ADMIN_PASS", "correct-horse-battery")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="site-tests-"))
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "verify-me")
os.environ.setdefault("TRUST_FORWARDED_FOR", "true")

import pytest
from fastapi.testclient import TestClient

from app.config import Settings, get_settings
from app.core.attempt_tracker import AttemptPolicy, AttemptTracker
from app.core.rate_limiter import limiter, reset_trackers
from app.models import Lead

ADMIN_USER = os.environ["ADMIN_USER"]
ADMIN_PASS = os.environ["ADMIN_PASS"]


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch, settings):
    """Fresh data dir, trackers and route limits for every test."""
    monkeypatch.setattr(settings, "data_dir", str(tmp_path))
    monkeypatch.setattr(settings, "whatsapp_admin_phone", "")
    monkeypatch.setattr(settings, "whatsapp_app_secret", "")
    reset_trackers()
    limiter.reset()
    yield
    reset_trackers()


@pytest.fixture
def client() -> TestClient:
    from app.main import app
    return TestClient(app)


@pytest.fixture
def admin_auth() -> tuple[str, str]:
    return (ADMIN_USER, ADMIN_PASS)


@pytest.fixture
def login_tracker() -> AttemptTracker:
    return AttemptTracker("login", AttemptPolicy(max_attempts=5, window_seconds=900, lockout_seconds=1800))


@pytest.fixture
def lead_tracker() -> AttemptTracker:
    return AttemptTracker("lead", AttemptPolicy(max_attempts=3, window_seconds=900))


@pytest.fixture
def sample_lead() -> Lead:
    return Lead(
        name="Ada Lovelace",
        email="ada@example.com",
        phone="+263 77 123 4567",
        business="Analytical Engines Ltd",
        budget="$5k-$10k",
        message="We need a new website for our engine.",
    )


@pytest.fixture
def lead_payload() -> dict:
    return {
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "+263 77 123 4567",
        "business": "Analytical Engines Ltd",
        "message": "We need a new website.",
    }
