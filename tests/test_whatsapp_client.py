"""
tests/test_whatsapp_client.py — WhatsApp Cloud API client
HTTP is served by httpx.MockTransport; no network access.
"""
from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from app.clients.whatsapp_client import (
    format_lead_notification,
    normalize_phone,
    send_template_message,
    send_text_message,
)


@pytest.fixture
def whatsapp_env(settings, monkeypatch):
    monkeypatch.setattr(settings, "whatsapp_phone_number_id", "1234567890")
    monkeypatch.setattr(settings, "whatsapp_access_token", "EAAtest-token")
    return settings


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def _error(code, subcode=None, message="boom"):
    body = {"error": {"code": code, "message": message}}
    if subcode is not None:
        body["error"]["error_subcode"] = subcode
    return lambda request: httpx.Response(400, json=body)


def test_normalize_phone():
    assert normalize_phone("+263 77 359-9291") == "+263773599291"
    assert normalize_phone("(263) 77 359 9291") == "+263773599291"


def test_text_message_request_shape(whatsapp_env):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"messages": [{"id": "wamid.ABC"}]})

    result = send_text_message("263 77 000 0000", "hello", client=_client(handler))

    assert result.success
    assert result.message_id == "wamid.ABC"
    assert seen["url"] == "https://graph.facebook.com/v21.0/1234567890/messages"
    assert seen["auth"] == "Bearer EAAtest-token"
    assert seen["body"] == {
        "messaging_product": "whatsapp",
        "to": "+263770000000",
        "type": "text",
        "text": {"body": "hello"},
    }


def test_template_message_includes_parameters(whatsapp_env):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"messages": [{"id": "wamid.T"}]})

    result = send_template_message(
        "+263770000000", "new_lead", parameters=["Ada"], client=_client(handler)
    )
    assert result.success
    template = seen["body"]["template"]
    assert template["name"] == "new_lead"
    assert template["language"] == {"code": "en"}
    assert template["components"][0]["parameters"] == [{"type": "text", "text": "Ada"}]


def test_missing_credentials_short_circuits(settings, monkeypatch):
    monkeypatch.setattr(settings, "whatsapp_phone_number_id", "")

    def handler(request):
        raise AssertionError("no request expected")

    result = send_text_message("+1555", "hi", client=_client(handler))
    assert not result.success
    assert "not configured" in result.error


@pytest.mark.parametrize(
    "code,subcode,fragment",
    [
        (190, None, "Invalid access token"),
        (100, None, "Invalid parameter"),
        (10, None, "Permission denied"),
        (131047, None, "24-hour window"),
        (131000, 131047, "24-hour window"),
    ],
)
def test_known_error_codes_are_explained(whatsapp_env, code, subcode, fragment):
    result = send_text_message("+1555", "hi", client=_client(_error(code, subcode)))
    assert not result.success
    assert fragment in result.error
    assert result.error_code == code


def test_unknown_error_keeps_api_message(whatsapp_env):
    result = send_text_message("+1555", "hi", client=_client(_error(4, message="Too many calls")))
    assert result.error == "Too many calls"
    assert result.error_code == 4


def test_transport_errors_are_retried(whatsapp_env):
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            raise httpx.ConnectError("unreachable", request=request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.R"}]})

    with patch("app.clients.whatsapp_client.time.sleep") as sleep:
        result = send_text_message("+1555", "hi", client=_client(handler))

    assert result.success
    assert calls["n"] == 3
    assert sleep.call_count == 2


def test_transport_failure_after_retries_is_reported(whatsapp_env):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with patch("app.clients.whatsapp_client.time.sleep"):
        result = send_text_message("+1555", "hi", client=_client(handler))

    assert not result.success
    assert "unreachable" in result.error


def test_lead_notification_format(sample_lead, settings, monkeypatch):
    monkeypatch.setattr(settings, "site_url", "https://studio.example/")
    text = format_lead_notification(sample_lead)

    assert text.startswith("🆕 *New Lead Received*")
    assert "*Name:* Ada Lovelace" in text
    assert "*Email:* ada@example.com" in text
    assert "*Phone:* +263 77 123 4567" in text
    assert "*Business:* Analytical Engines Ltd" in text
    assert "*Message:*\nWe need a new website for our engine." in text
    assert text.endswith("View in dashboard: https://studio.example/admin/leads")


def test_lead_notification_truncates_long_message(sample_lead):
    sample_lead.message = "x" * 250
    sample_lead.business = None
    text = format_lead_notification(sample_lead)

    assert "x" * 200 + "..." in text
    assert "x" * 201 not in text
    assert "*Business:*" not in text


@pytest.mark.parametrize(
    "status_code,body,expected_error",
    [
        (400, {"error": "OAuthException"}, "OAuthException"),
        (400, ["unexpected", "list"], "Failed to send WhatsApp message"),
        (500, "upstream broke", "Failed to send WhatsApp message"),
        (400, {"error": {"code": "not-a-number", "message": {"nested": True}}}, "{'nested': True}"),
    ],
)
def test_odd_error_bodies_become_failed_results(whatsapp_env, status_code, body, expected_error):
    client = _client(lambda request: httpx.Response(status_code, json=body))
    result = send_text_message("+1555", "hi", client=client)
    assert not result.success
    assert result.error == expected_error
    assert result.error_code is None


@pytest.mark.parametrize("body", [["not", "a", "dict"], {"messages": "wamid.X"}, {"messages": [7]}])
def test_success_with_odd_body_has_no_message_id(whatsapp_env, body):
    client = _client(lambda request: httpx.Response(200, json=body))
    result = send_text_message("+1555", "hi", client=client)
    assert result.success
    assert result.message_id is None
