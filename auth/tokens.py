"""
auth/tokens.py -- JWT, password hashing, and invite token utilities.

Security design decisions:
  JWT: python-jose with HS256. Session tokens carry user_id, email and expiry
       plus kind="access". Invite tokens carry name, email and expiry plus
       kind="invite". The kind claim keeps one from being replayed as the
       other. Decoding returns None on any failure.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email exists.

  SECRET_KEY: sourced from core.config.get_settings(), which refuses to start
       without one in production.

Layer rule: no imports from api/, audit/, actions/ or maintenance/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import AccessStore

logger = logging.getLogger("adminboard.auth")

_settings = get_settings()

_ALGORITHM = "HS256"
ACCESS_COOKIE = "access_token"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates at 72 bytes; the sign-up schema caps passwords at 128
    characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first sign-in is not measurably slower.
_DUMMY_HASH: str = hash_password("adminboard_timing_dummy")


# ---------------------------------------------------------------------------
# Session JWT
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, email: str, expire_seconds: int = 0) -> str:
    """Encode a signed session JWT.

    expire_seconds: 0 (default) uses Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    payload = {
        "sub": email,
        "user_id": user_id,
        "kind": "access",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("kind") != "access" or "user_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Invite JWT
# ---------------------------------------------------------------------------


def create_invite_token(name: str, email: str, expires_at: datetime) -> str:
    """Sign an invitation for name/email, valid until expires_at.

    The sign-up endpoint trusts name and email from this token only, so the
    invitee cannot register under another address.
    """
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    payload = {"name": name, "email": email, "kind": "invite", "exp": expires_at}
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_invite_token(token: str) -> dict | None:
    """Return {"name", "email"} for a valid invite token, None otherwise."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("kind") != "invite" or not payload.get("email") or not payload.get("name"):
        return None
    return {"name": payload["name"], "email": payload["email"]}


# ---------------------------------------------------------------------------
# Sign-in (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: AccessStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    bcrypt always runs, whether or not the email exists, so response time does
    not leak which accounts exist. Inactive users are refused after the check.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        logger.info("Sign-in refused for inactive user id=%s", user.id)
        return None
    return user


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session JWT as an httpOnly cookie on the response.

    samesite="lax" blocks the cookie on cross-site POSTs, which covers the
    action endpoint. max_age matches the JWT expiry.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        ACCESS_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
