"""
api/routes/auth.py -- Session issuance endpoints.

Routes:
  POST /api/auth/sign-in    -- email/password; sets the access_token cookie
  POST /api/auth/sign-out   -- clears the cookie
  GET  /api/auth/session    -- the resolved principal (requires auth)
  POST /api/auth/sign-up    -- redeem an invite token; creates an active user

Security:
  POST /sign-in is rate-limited per client IP (SIGN_IN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from actions.schemas import EntityOut
from api.limiter import limiter
from api.models import SessionResponse, SignInRequest, SignUpRequest
from audit.helpers import add_user_create_log
from auth.dependencies import get_current_session
from auth.models import Session, User
from auth.store import AccessStore
from auth.tokens import (
    ACCESS_COOKIE,
    authenticate_user,
    create_access_token,
    decode_invite_token,
    hash_password,
    set_auth_cookie,
)
from core.config import get_settings

logger = logging.getLogger("adminboard.api")

_settings = get_settings()

# Auth policy:
# - POST /api/auth/sign-in:   public -- the sign-in endpoint must be unauthenticated
# - POST /api/auth/sign-out:  public -- clearing a cookie needs no prior auth
# - POST /api/auth/sign-up:   public -- the invite token is the credential
# - GET  /api/auth/session:   requires auth (get_current_session)
router = APIRouter()


def _session_response(session: Session) -> SessionResponse:
    user = session.user
    return SessionResponse(
        user_id=user.id,
        name=user.name,
        email=user.email,
        permissions=sorted(session.permissions),
        entities=[EntityOut.from_domain(e) for e in user.entities],
        selected_entity_id=user.selected_entity_id,
    )


def _signed_in_response(store: AccessStore, user: User, status_code: int = 200) -> JSONResponse:
    session = Session(user=user, permissions=store.get_effective_permissions(user.id))
    token = create_access_token(user.id, user.email)
    resp = JSONResponse(status_code=status_code, content=_session_response(session).model_dump(mode="json"))
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.sign_in_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/sign-in", response_model=SessionResponse)
def sign_in(request: Request, body: SignInRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Wrong email, wrong password and inactive account all produce the same
    error so the response does not reveal which accounts exist.
    """
    store: AccessStore = request.app.state.access_store
    user = authenticate_user(store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp
    logger.info("User %d signed in", user.id)
    return _signed_in_response(store, user)


@router.post("/auth/sign-out")
async def sign_out() -> JSONResponse:
    """Clear the session cookie."""
    resp = JSONResponse(content={"message": "Signed out."})
    resp.delete_cookie(ACCESS_COOKIE)
    return resp


@router.post("/auth/sign-up", response_model=SessionResponse, status_code=201)
def sign_up(request: Request, body: SignUpRequest) -> JSONResponse:
    """Create the invited user and sign them in.

    The user starts with no roles and no entities; an admin assigns those.
    Redeeming the invite verifies the email address.
    """
    invite = decode_invite_token(body.token)
    if invite is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_invite", "message": "Invitation is invalid or has expired."},
        )
    store: AccessStore = request.app.state.access_store
    try:
        user_id = store.create_user(
            User(
                name=invite["name"],
                email=invite["email"].lower(),
                hashed_password=hash_password(body.password),
                email_verified=True,
            )
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email already exists."},
        ) from exc
    user = store.get_user(user_id)
    add_user_create_log(request.app.state.audit_writer, user, actor_id=user.id)
    logger.info("Invite redeemed for user %d", user.id)
    return _signed_in_response(store, user, status_code=201)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/session", response_model=SessionResponse)
async def session(current: Session = Depends(get_current_session)) -> SessionResponse:
    """Return the principal for the current request."""
    return _session_response(current)
