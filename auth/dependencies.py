"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

try_get_current_session() is the soft variant (returns None on failure) used
by the route middleware. get_current_session() wraps it and raises HTTP 401.

Actions do not use these: they call auth.guard.check_auth() inline so that
guard failures are reported through the action result envelope.

Layer rule: no imports from audit/, actions/ or maintenance/.
  auth/dependencies.py may import from fastapi because it is part of the
  FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Session
from auth.session import resolve_session


def try_get_current_session(request: Request) -> Session | None:
    """Resolve the request's session. Never raises."""
    return resolve_session(request.headers, request.app.state.access_store)


def get_current_session(request: Request) -> Session:
    """Require an active session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(session: Session = Depends(get_current_session)): ...
    """
    session = try_get_current_session(request)
    if session is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return session
