"""
app/utils/network.py — Client identity helpers for attempt tracking
"""
from __future__ import annotations

from fastapi import Request

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request, trust_forwarded: bool = True) -> str:
    """
    Return the caller's address.
    Behind a proxy the first X-Forwarded-For entry is the original client;
    otherwise fall back to the socket peer.
    """
    if trust_forwarded:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def login_identifier(username: str, client_ip: str) -> str:
    """Login attempts are tracked per account per address."""
    return f"{username.strip().lower()}:{client_ip}"
