"""Request identity.

The identity provider sits in front of this service and forwards a stable opaque
token per authenticated request, either as a bearer token or in X-User-Token.
The token is a credential: only its SHA-256 digest is stored (users.handle), and
neither form is ever rendered to other users.

Settlement and premium-pass activation come from the payment watcher, not from
the user; those routes require the server-side X-Settlement-Key instead.
"""

from __future__ import annotations

import hashlib
import secrets

from flask import current_app, request

from errors import Forbidden, Unauthenticated
from ledger import ensure_user

MAX_TOKEN_LENGTH = 512


def _raw_token() -> str:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return (request.headers.get("X-User-Token") or "").strip()


def handle_for_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def current_handle() -> str | None:
    """Return the caller's account handle, or None for anonymous/malformed tokens."""
    token = _raw_token()
    if not token or len(token) > MAX_TOKEN_LENGTH or any(ch.isspace() for ch in token):
        return None
    return handle_for_token(token)


def require_user() -> str:
    """Resolve the caller and make sure an account exists for them."""
    handle = current_handle()
    if not handle:
        raise Unauthenticated()
    ensure_user(handle)
    return handle


def require_settlement_key() -> None:
    # Header only; an unset key disables the internal routes.
    key = request.headers.get("X-Settlement-Key", "")
    expected = current_app.config.get("SETTLEMENT_API_KEY") or ""
    if not (expected and secrets.compare_digest(key, expected)):
        raise Forbidden("Settlement key required")
