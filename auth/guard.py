"""
auth/guard.py -- Auth Guard for permission-checked actions.

check_auth() is called at the top of every action, before any mutation:

    session = check_auth(request, required_permission=ROLE_EDIT)

It fails with UnauthorizedError when there is no session, when the session's
user is inactive, or when required_permission is not in the effective
permission set. Nothing is cached between calls; every action re-resolves.

On success the session is published to a context variable so audit helpers
can find the acting user without threading it through every call:

    current_session().user.id

Layer rule: no imports from api/, audit/, actions/ or maintenance/.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

from starlette.requests import Request

from auth.models import Session
from auth.session import resolve_session
from core.errors import UnauthorizedError

logger = logging.getLogger("adminboard.auth")

_current_session: ContextVar[Session | None] = ContextVar("adminboard_current_session", default=None)


def authorize(session: Session | None, required_permission: str | None = None) -> Session:
    """Apply the guard rules to an already-resolved session."""
    if session is None or not session.user.is_active:
        raise UnauthorizedError("Unauthorized: No active session")
    if required_permission and not session.has_permission(required_permission):
        raise UnauthorizedError(f"Unauthorized: Missing permission {required_permission}")
    return session


def check_auth(request: Request, required_permission: str | None = None) -> Session:
    """Resolve the request's session and enforce the guard rules."""
    session = resolve_session(request.headers, request.app.state.access_store)
    authorize(session, required_permission)
    _current_session.set(session)
    return session


def current_session() -> Session | None:
    """Return the session published by the last successful check_auth() in this context."""
    return _current_session.get()


def use_session(session: Session | None):
    """Publish a session explicitly. Returns a token for reset_session().

    For callers that resolve the session themselves (CLI, tests).
    """
    return _current_session.set(session)


def reset_session(token) -> None:
    _current_session.reset(token)
