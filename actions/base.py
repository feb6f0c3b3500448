"""
actions/base.py -- Dispatch layer for permission-checked actions.

Every action is a plain function registered with @action:

    @action("create_role", schema=CreateRoleInput)
    def create_role(ctx: ActionContext, data: CreateRoleInput) -> RoleOut:
        check_auth(ctx.request, ROLE_CREATE)
        ...

The decorator turns it into a callable that always returns an ActionResult:

  1. The raw input is validated against the schema. Failures come back as
     validation_errors, keyed by field, with the schema's messages only.
  2. The function runs in a fresh context copy, so the session published by
     check_auth() is visible to audit helpers for this call and no other.
  3. Any exception is logged server-side with its detail, and the caller gets
     DEFAULT_SERVER_ERROR_MESSAGE. Internal detail never reaches the client.

The registry backs POST /api/actions/{name}.
"""

from __future__ import annotations

import contextvars
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, ValidationError
from starlette.requests import Request

from audit.store import LogStore
from audit.writer import AuditLogWriter
from auth.store import AccessStore
from core.errors import AdminError

logger = logging.getLogger("adminboard.actions")

DEFAULT_SERVER_ERROR_MESSAGE = "Something went wrong while executing the operation."


@dataclass
class ActionContext:
    """What an action can reach: the request (for the guard) and the app's stores."""

    request: Request

    @property
    def store(self) -> AccessStore:
        return self.request.app.state.access_store

    @property
    def log_store(self) -> LogStore:
        return self.request.app.state.log_store

    @property
    def writer(self) -> AuditLogWriter:
        return self.request.app.state.audit_writer


class ActionResult(BaseModel):
    """Envelope returned by every action. Exactly one field is set."""

    model_config = ConfigDict(frozen=True)

    data: Any = None
    server_error: Optional[str] = None
    validation_errors: Optional[dict[str, list[str]]] = None

    @property
    def ok(self) -> bool:
        return self.server_error is None and self.validation_errors is None


_REGISTRY: dict[str, Callable[..., ActionResult]] = {}


def get_action(name: str) -> Callable[..., ActionResult] | None:
    return _REGISTRY.get(name)


def action_names() -> list[str]:
    return sorted(_REGISTRY)


def _flatten_errors(exc: ValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        key = ".".join(str(p) for p in err["loc"]) or "_errors"
        errors.setdefault(key, []).append(err["msg"])
    return errors


def action(name: str, schema: type[BaseModel] | None = None):
    """Register fn under name and wrap it with validation and error masking."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., ActionResult]:
        if name in _REGISTRY:
            raise ValueError(f"Duplicate action name: {name}")

        @functools.wraps(fn)
        def run(ctx: ActionContext, raw_input: Any = None) -> ActionResult:
            args: tuple = (ctx,)
            if schema is not None:
                try:
                    args = (ctx, schema.model_validate(raw_input if raw_input is not None else {}))
                except ValidationError as exc:
                    logger.info("Action %s rejected input: %s", name, exc.errors())
                    return ActionResult(validation_errors=_flatten_errors(exc))
            try:
                data = contextvars.copy_context().run(fn, *args)
            except AdminError as exc:
                logger.warning("Action error: %s [%s] %s", name, exc.code, exc)
                return ActionResult(server_error=DEFAULT_SERVER_ERROR_MESSAGE)
            except Exception:
                logger.exception("Action error: %s", name)
                return ActionResult(server_error=DEFAULT_SERVER_ERROR_MESSAGE)
            return ActionResult(data=jsonable_encoder(data))

        run.action_name = name
        _REGISTRY[name] = run
        return run

    return decorator
