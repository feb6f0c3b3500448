"""
audit/helpers.py -- One helper per audited action.

Each helper shapes the payload for its action type and hands it to the writer.
When actor_id is not given, the acting user is taken from the session that
auth.guard.check_auth() published for the current request. Entity helpers also
default entity_id to that session's selected entity.

A helper that cannot resolve who acted (or, for entity events, which entity
the event belongs to) logs a warning and returns False instead of writing a
record with a blank actor.

subject may be any object with id and name attributes (User, Role, Entity,
audit.models.Ref).
"""

from __future__ import annotations

import logging

from audit.models import (
    EntityCreated,
    EntityDisabled,
    EntityEnabled,
    EntityUpdated,
    LogRecord,
    Ref,
    RoleCreated,
    RoleDeleted,
    RolePermissionsSet,
    RoleUpdated,
    UserCreated,
    UserDeleted,
    UserDisabled,
    UserEmailVerified,
    UserEnabled,
    UserEntitiesSet,
    UserRolesSet,
    UserUpdated,
)
from audit.writer import AuditLogWriter
from auth.guard import current_session

logger = logging.getLogger("adminboard.audit")


def _ref(subject) -> Ref:
    return Ref(id=subject.id, name=subject.name or "")


def _resolve_actor(actor_id: int | None) -> int | None:
    if actor_id is not None:
        return actor_id
    session = current_session()
    return session.user.id if session is not None else None


def _add_global_log(writer: AuditLogWriter, payload_cls, subject, actor_id: int | None) -> bool:
    actor = _resolve_actor(actor_id)
    if actor is None:
        logger.warning("No acting user for %s log; not written", payload_cls.action_type.value)
        return False
    return writer.add_log(LogRecord(payload=payload_cls(_ref(subject)), user_id=actor))


def _add_entity_log(
    writer: AuditLogWriter,
    payload_cls,
    subject,
    entity_id: int | None,
    actor_id: int | None,
) -> bool:
    session = current_session()
    if entity_id is None and session is not None:
        entity_id = session.user.selected_entity_id
    actor = _resolve_actor(actor_id)
    if actor is None or entity_id is None:
        logger.warning(
            "Missing actor or entity for %s log (actor=%s entity=%s); not written",
            payload_cls.action_type.value,
            actor,
            entity_id,
        )
        return False
    return writer.add_log(LogRecord(payload=payload_cls(_ref(subject)), user_id=actor, entity_id=entity_id))


# ---------------------------------------------------------------------------
# User events
# ---------------------------------------------------------------------------


def add_user_create_log(writer: AuditLogWriter, user, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, UserCreated, user, actor_id)


def add_user_update_log(writer: AuditLogWriter, user, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, UserUpdated, user, actor_id)


def add_user_delete_log(writer: AuditLogWriter, user, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, UserDeleted, user, actor_id)


def add_user_set_role_log(writer: AuditLogWriter, user, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, UserRolesSet, user, actor_id)


def add_user_set_entity_log(writer: AuditLogWriter, user, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, UserEntitiesSet, user, actor_id)


def add_user_disable_log(writer: AuditLogWriter, user, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, UserDisabled, user, actor_id)


def add_user_enable_log(writer: AuditLogWriter, user, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, UserEnabled, user, actor_id)


def add_user_email_verified_log(writer: AuditLogWriter, user, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, UserEmailVerified, user, actor_id)


# ---------------------------------------------------------------------------
# Role events
# ---------------------------------------------------------------------------


def add_role_create_log(writer: AuditLogWriter, role, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, RoleCreated, role, actor_id)


def add_role_update_log(writer: AuditLogWriter, role, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, RoleUpdated, role, actor_id)


def add_role_delete_log(writer: AuditLogWriter, role, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, RoleDeleted, role, actor_id)


def add_role_set_permission_log(writer: AuditLogWriter, role, actor_id: int | None = None) -> bool:
    return _add_global_log(writer, RolePermissionsSet, role, actor_id)


# ---------------------------------------------------------------------------
# Entity events
# ---------------------------------------------------------------------------


def add_entity_create_log(
    writer: AuditLogWriter, entity, entity_id: int | None = None, actor_id: int | None = None
) -> bool:
    return _add_entity_log(writer, EntityCreated, entity, entity_id, actor_id)


def add_entity_update_log(
    writer: AuditLogWriter, entity, entity_id: int | None = None, actor_id: int | None = None
) -> bool:
    return _add_entity_log(writer, EntityUpdated, entity, entity_id, actor_id)


def add_entity_disable_log(
    writer: AuditLogWriter, entity, entity_id: int | None = None, actor_id: int | None = None
) -> bool:
    return _add_entity_log(writer, EntityDisabled, entity, entity_id, actor_id)


def add_entity_enable_log(
    writer: AuditLogWriter, entity, entity_id: int | None = None, actor_id: int | None = None
) -> bool:
    return _add_entity_log(writer, EntityEnabled, entity, entity_id, actor_id)
