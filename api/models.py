"""
API request and response models for the AdminBoard HTTP endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
Action inputs and outputs live in actions/schemas.py; this module covers the
routes that sit outside the action dispatcher (auth, cron, health) and the
shared error envelope.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from actions.schemas import EMAIL_PATTERN, EntityOut, Password

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignInRequest(BaseModel):
    """Request body for POST /api/auth/sign-in."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    # Not stripped: must match what sign-up and create_user stored.
    password: Annotated[str, StringConstraints(strip_whitespace=False, min_length=1, max_length=128)]


class SignUpRequest(BaseModel):
    """Request body for POST /api/auth/sign-up.

    Name and email come from the invite token, never from the body.
    """

    token: str = Field(min_length=1, max_length=4096)
    password: Password


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    """The resolved principal, as returned by sign-in and GET /api/auth/session."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    name: str
    email: str
    permissions: list[str]
    entities: list[EntityOut]
    selected_entity_id: Optional[int]


class ActionResponse(BaseModel):
    """Body of every POST /api/actions/{name} response."""

    model_config = ConfigDict(frozen=True)

    data: Any = None
    server_error: Optional[str] = None
    validation_errors: Optional[dict[str, list[str]]] = None


class CronResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    error: Optional[str] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
