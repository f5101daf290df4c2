"""Shared-device staff session stored in a browser cookie.

The cookie is a presence check for a shared terminal, not an authentication
boundary: it holds the URL-encoded JSON ``{"id": ..., "name": ...}`` of the
staff member who picked their name on the login screen.
"""

from __future__ import annotations

import json
from urllib.parse import quote, unquote

from fastapi import Request
from pydantic import ValidationError

from shared.http.errors import StaffSessionRequiredError
from shared.models import StaffSession
from shared.observability.middleware import annotate_request

__all__ = [
    "decode_staff_cookie",
    "encode_staff_cookie",
    "require_staff_session",
]


def encode_staff_cookie(session: StaffSession) -> str:
    payload = json.dumps(
        {"id": session.id, "name": session.name},
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return quote(payload, safe="")


def decode_staff_cookie(value: str | None) -> StaffSession | None:
    """Return the session carried by ``value`` or ``None`` when unusable."""

    if not value:
        return None
    try:
        payload = json.loads(unquote(value))
        return StaffSession.model_validate(payload)
    except (json.JSONDecodeError, ValidationError):
        return None


def require_staff_session(request: Request) -> StaffSession:
    """FastAPI dependency rejecting requests without a staff session cookie."""

    cookie_name = request.app.state.settings.session.cookie_name
    session = decode_staff_cookie(request.cookies.get(cookie_name))
    if session is None:
        raise StaffSessionRequiredError("Select a staff member on the login screen first.")
    annotate_request(request, staff_id=session.id)
    return session
