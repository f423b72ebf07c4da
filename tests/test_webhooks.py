"""
tests/test_webhooks.py — WhatsApp webhook verification and payload parsing
"""
from __future__ import annotations

import hashlib
import hmac
import json

from app.services.webhook_parser import extract_message, parse_webhook, verify_signature


def _delivery(messages=None, statuses=None) -> dict:
    value = {"messaging_product": "whatsapp"}
    if messages is not None:
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses
    return {"object": "whatsapp_business_account", "entry": [{"changes": [{"value": value}]}]}


def _sign(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


# ──────────────────────────────────────────────────────────────────────────────
# GET handshake
# ──────────────────────────────────────────────────────────────────────────────

def test_handshake_returns_challenge(client):
    response = client.get(
        "/api/webhooks/whatsapp",
        params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "42"},
    )
    assert response.status_code == 200
    assert response.text == "42"


def test_handshake_with_wrong_token_is_forbidden(client):
    response = client.get(
        "/api/webhooks/whatsapp",
        params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "42"},
    )
    assert response.status_code == 403


def test_handshake_without_configured_token_is_500(client, settings, monkeypatch):
    monkeypatch.setattr(settings, "whatsapp_verify_token", "")
    response = client.get("/api/webhooks/whatsapp", params={"hub.mode": "subscribe"})
    assert response.status_code == 500


# ──────────────────────────────────────────────────────────────────────────────
# POST deliveries
# ──────────────────────────────────────────────────────────────────────────────

def test_delivery_is_acknowledged(client):
    payload = _delivery(messages=[{"from": "26377", "id": "wamid.1", "type": "text", "text": {"body": "Hi 👋"}}])
    response = client.post("/api/webhooks/whatsapp", json=payload)
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_bad_signature_is_rejected_when_secret_set(client, settings, monkeypatch):
    monkeypatch.setattr(settings, "whatsapp_app_secret", "app-secret")
    body = json.dumps(_delivery(messages=[])).encode()
    response = client.post(
        "/api/webhooks/whatsapp",
        content=body,
        headers={"Content-Type": "application/json", "X-Hub-Signature-256": "sha256=deadbeef"},
    )
    assert response.status_code == 403


def test_valid_signature_is_accepted(client, settings, monkeypatch):
    monkeypatch.setattr(settings, "whatsapp_app_secret", "app-secret")
    body = json.dumps(_delivery(messages=[])).encode()
    response = client.post(
        "/api/webhooks/whatsapp",
        content=body,
        headers={"Content-Type": "application/json", "X-Hub-Signature-256": _sign(body, "app-secret")},
    )
    assert response.status_code == 200


def test_garbage_body_is_still_acknowledged(client):
    response = client.post("/api/webhooks/whatsapp", content=b"{not json")
    assert response.status_code == 200


# ──────────────────────────────────────────────────────────────────────────────
# Parser
# ──────────────────────────────────────────────────────────────────────────────

def test_verify_signature_requires_secret_and_header():
    assert not verify_signature(b"{}", None, "secret")
    assert not verify_signature(b"{}", _sign(b"{}", "secret"), "")
    assert verify_signature(b"{}", _sign(b"{}", "secret"), "secret")


def test_parse_text_and_status():
    payload = _delivery(
        messages=[{"from": "26377", "id": "wamid.1", "type": "text", "text": {"body": "Hello"}}],
        statuses=[{"id": "wamid.9", "status": "delivered", "recipient_id": "26377"}],
    )
    messages, statuses = parse_webhook(payload)
    assert [(m.sender, m.text) for m in messages] == [("26377", "Hello")]
    assert statuses[0].status == "delivered"
    assert statuses[0].recipient == "26377"


def test_media_caption_and_placeholder():
    image = extract_message({"from": "1", "type": "image", "image": {"id": "m1", "caption": "Logo"}})
    audio = extract_message({"from": "1", "type": "audio", "audio": {"id": "m2"}})
    document = extract_message({"from": "1", "type": "document", "document": {"id": "m3", "filename": "brief.pdf"}})

    assert (image.text, image.media_id) == ("Logo", "m1")
    assert audio.text == "Audio message"
    assert document.text == "brief.pdf"


def test_interactive_reaction_and_location():
    button = extract_message({
        "from": "1", "type": "interactive",
        "interactive": {"type": "button_reply", "button_reply": {"id": "b1", "title": "Yes"}},
    })
    reaction = extract_message({"from": "1", "type": "reaction", "reaction": {"message_id": "x", "emoji": "👍"}})
    location = extract_message({"from": "1", "type": "location", "location": {"latitude": 1.5, "longitude": 2.5}})

    assert button.text == "Yes"
    assert reaction.text == "👍"
    assert location.text == "1.5,2.5"


def test_malformed_parts_are_skipped():
    payload = {"entry": [None, {"changes": ["bad", {"value": {"messages": [{"type": "text"}, 7]}}]}]}
    assert parse_webhook(payload) == ([], [])
    assert parse_webhook(["not", "a", "dict"]) == ([], [])


def test_non_string_ids_are_coerced():
    payload = _delivery(
        messages=[
            {"from": 15551234, "id": 12345, "type": "text", "text": {"body": "Hi"}},
            {"from": "1", "type": "image", "image": {"id": 987}},
            {"from": "1", "type": "interactive", "interactive": {"button_reply": "Yes"}},
        ],
        statuses=[{"id": 55, "status": "read", "recipient_id": 15551234}],
    )
    messages, statuses = parse_webhook(payload)

    assert (messages[0].sender, messages[0].message_id) == ("15551234", "12345")
    assert messages[1].media_id == "987"
    assert messages[2].text == ""
    assert (statuses[0].message_id, statuses[0].recipient) == ("55", "15551234")


def test_odd_shaped_delivery_is_still_acknowledged(client):
    payload = _delivery(
        messages=[{"from": "15551234", "id": 12345, "type": "text", "text": {"body": "Hi"}}],
        statuses=[{"id": "wamid.2", "status": "sent", "recipient_id": 15551234}],
    )
    payload["entry"].append({"changes": {"value": "not a list"}})
    response = client.post("/api/webhooks/whatsapp", json=payload)
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
