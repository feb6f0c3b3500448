"""
auth/session.py -- Session Resolver.

Turns inbound request headers into the authenticated principal. Two token
sources are checked in priority order; the first that decodes wins:
  1. access_token cookie -- set by POST /api/auth/sign-in.
  2. Authorization: Bearer <token> header -- scripts and API clients.

Both converge on a Session (user + effective permission set). Resolution is
read-only and never raises: any failure yields None.

Layer rule: no imports from api/, audit/, actions/ or maintenance/.
"""

from __future__ import annotations

from collections.abc import Mapping

from starlette.requests import cookie_parser

from auth.models import Session
from auth.store import AccessStore
from auth.tokens import ACCESS_COOKIE, decode_access_token


def _tokens_from_headers(headers: Mapping[str, str]) -> list[str]:
    """Candidate tokens in priority order: cookie first, then bearer header."""
    tokens: list[str] = []
    cookie_header = headers.get("cookie", "")
    if cookie_header:
        token = cookie_parser(cookie_header).get(ACCESS_COOKIE)
        if token:
            tokens.append(token)
    auth_header = headers.get("authorization", "")
    if auth_header.startswith("Bearer ") and auth_header[7:]:
        tokens.append(auth_header[7:])
    return tokens


def resolve_session(headers: Mapping[str, str], store: AccessStore) -> Session | None:
    """Return the Session for these headers, or None.

    None when there is no token, the token is invalid or expired, the user no
    longer exists, or the user is inactive.
    """
    # A stale cookie must not hide a valid bearer token.
    payload = None
    for token in _tokens_from_headers(headers):
        payload = decode_access_token(token)
        if payload is not None:
            break
    if payload is None:
        return None
    user = store.get_user(payload["user_id"])
    if user is None or not user.is_active:
        return None
    return Session(user=user, permissions=store.get_effective_permissions(user.id))
