"""
audit/models.py -- Domain types for the activity log.

The log payload is a closed sum type: one frozen dataclass per action type,
each carrying its own typed subject. LogPayload is the union of all variants.
PAYLOAD_TYPES maps every LogActionType to exactly one variant, and the module
refuses to import if a variant or a description template is missing, so a new
action type cannot be added without handling it everywhere it is rendered.

Three shapes exist:
  user events   -- {"user":   {"id", "name"}}, entity_id is NULL
  role events   -- {"role":   {"id", "name"}}, entity_id is NULL
  entity events -- {"entity": {"id", "name"}}, entity_id is required

LogRecord is what the writer appends; LogEntry is what the query returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Union


class LogActionType(str, Enum):
    USER_CREATE = "user_create"
    USER_UPDATE = "user_update"
    USER_DELETE = "user_delete"
    USER_SET_ROLE = "user_set_role"
    USER_SET_ENTITY = "user_set_entity"
    USER_DISABLE = "user_disable"
    USER_ENABLE = "user_enable"
    USER_EMAIL_VERIFIED = "user_email_verified"
    ROLE_CREATE = "role_create"
    ROLE_UPDATE = "role_update"
    ROLE_DELETE = "role_delete"
    ROLE_SET_PERMISSION = "role_set_permission"
    ENTITY_CREATE = "entity_create"
    ENTITY_UPDATE = "entity_update"
    ENTITY_DISABLE = "entity_disable"
    ENTITY_ENABLE = "entity_enable"


@dataclass(frozen=True)
class Ref:
    """Id and display name of the record an event is about."""

    id: int
    name: str


# ---------------------------------------------------------------------------
# Payload shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _UserEvent:
    action_type: ClassVar[LogActionType]
    subject_key: ClassVar[str] = "user"
    entity_scoped: ClassVar[bool] = False
    user: Ref

    @property
    def subject(self) -> Ref:
        return self.user


@dataclass(frozen=True)
class _RoleEvent:
    action_type: ClassVar[LogActionType]
    subject_key: ClassVar[str] = "role"
    entity_scoped: ClassVar[bool] = False
    role: Ref

    @property
    def subject(self) -> Ref:
        return self.role


@dataclass(frozen=True)
class _EntityEvent:
    action_type: ClassVar[LogActionType]
    subject_key: ClassVar[str] = "entity"
    entity_scoped: ClassVar[bool] = True
    entity: Ref

    @property
    def subject(self) -> Ref:
        return self.entity


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


class UserCreated(_UserEvent):
    action_type = LogActionType.USER_CREATE


class UserUpdated(_UserEvent):
    action_type = LogActionType.USER_UPDATE


class UserDeleted(_UserEvent):
    action_type = LogActionType.USER_DELETE


class UserRolesSet(_UserEvent):
    action_type = LogActionType.USER_SET_ROLE


class UserEntitiesSet(_UserEvent):
    action_type = LogActionType.USER_SET_ENTITY


class UserDisabled(_UserEvent):
    action_type = LogActionType.USER_DISABLE


class UserEnabled(_UserEvent):
    action_type = LogActionType.USER_ENABLE


class UserEmailVerified(_UserEvent):
    action_type = LogActionType.USER_EMAIL_VERIFIED


class RoleCreated(_RoleEvent):
    action_type = LogActionType.ROLE_CREATE


class RoleUpdated(_RoleEvent):
    action_type = LogActionType.ROLE_UPDATE


class RoleDeleted(_RoleEvent):
    action_type = LogActionType.ROLE_DELETE


class RolePermissionsSet(_RoleEvent):
    action_type = LogActionType.ROLE_SET_PERMISSION


class EntityCreated(_EntityEvent):
    action_type = LogActionType.ENTITY_CREATE


class EntityUpdated(_EntityEvent):
    action_type = LogActionType.ENTITY_UPDATE


class EntityDisabled(_EntityEvent):
    action_type = LogActionType.ENTITY_DISABLE


class EntityEnabled(_EntityEvent):
    action_type = LogActionType.ENTITY_ENABLE


LogPayload = Union[
    UserCreated,
    UserUpdated,
    UserDeleted,
    UserRolesSet,
    UserEntitiesSet,
    UserDisabled,
    UserEnabled,
    UserEmailVerified,
    RoleCreated,
    RoleUpdated,
    RoleDeleted,
    RolePermissionsSet,
    EntityCreated,
    EntityUpdated,
    EntityDisabled,
    EntityEnabled,
]

PAYLOAD_TYPES: dict[LogActionType, type] = {cls.action_type: cls for cls in LogPayload.__args__}

# Human-readable line per action type, used by the log viewer and reports.
_DESCRIPTIONS: dict[LogActionType, str] = {
    LogActionType.USER_CREATE: "created user {name}",
    LogActionType.USER_UPDATE: "updated user {name}",
    LogActionType.USER_DELETE: "deleted user {name}",
    LogActionType.USER_SET_ROLE: "changed the roles of user {name}",
    LogActionType.USER_SET_ENTITY: "changed the entities of user {name}",
    LogActionType.USER_DISABLE: "disabled user {name}",
    LogActionType.USER_ENABLE: "enabled user {name}",
    LogActionType.USER_EMAIL_VERIFIED: "verified the email of user {name}",
    LogActionType.ROLE_CREATE: "created role {name}",
    LogActionType.ROLE_UPDATE: "updated role {name}",
    LogActionType.ROLE_DELETE: "deleted role {name}",
    LogActionType.ROLE_SET_PERMISSION: "changed the permissions of role {name}",
    LogActionType.ENTITY_CREATE: "created entity {name}",
    LogActionType.ENTITY_UPDATE: "updated entity {name}",
    LogActionType.ENTITY_DISABLE: "disabled entity {name}",
    LogActionType.ENTITY_ENABLE: "enabled entity {name}",
}

_missing = (set(LogActionType) - set(PAYLOAD_TYPES)) | (set(LogActionType) - set(_DESCRIPTIONS))
if _missing:
    raise RuntimeError(f"Log action types without a payload variant or description: {sorted(_missing)}")


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def payload_to_detail(payload: LogPayload) -> dict:
    """Shape the JSON detail stored in logs.action_detail."""
    subject = payload.subject
    return {payload.subject_key: {"id": subject.id, "name": subject.name}}


def payload_from_detail(action_type: LogActionType | str, detail: dict) -> LogPayload:
    """Rebuild the typed payload from a stored row.

    Raises ValueError for an unknown action type or a detail without the
    subject key the variant expects.
    """
    cls = PAYLOAD_TYPES[LogActionType(action_type)]
    raw = detail.get(cls.subject_key)
    if not isinstance(raw, dict) or "id" not in raw:
        raise ValueError(f"Malformed detail for {cls.action_type.value}: {detail!r}")
    return cls(Ref(id=raw["id"], name=raw.get("name") or ""))


def describe(payload: LogPayload) -> str:
    return _DESCRIPTIONS[payload.action_type].format(name=payload.subject.name)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LogRecord:
    """One event waiting to be appended.

    user_id is the acting user. entity_id must be set for entity-scoped
    payloads and must be None for everything else.
    """

    payload: LogPayload
    user_id: int
    entity_id: int | None = None

    def __post_init__(self) -> None:
        if self.payload.entity_scoped and self.entity_id is None:
            raise ValueError(f"{self.payload.action_type.value} requires an entity_id")
        if not self.payload.entity_scoped and self.entity_id is not None:
            raise ValueError(f"{self.payload.action_type.value} must not carry an entity_id")

    @property
    def action_type(self) -> LogActionType:
        return self.payload.action_type


@dataclass
class LogEntry:
    """A persisted log row with the actor and entity names joined in."""

    id: int
    payload: LogPayload
    user_id: int
    created_at: datetime
    user_name: str = ""
    entity_id: int | None = None
    entity_name: str | None = None

    @property
    def action_type(self) -> LogActionType:
        return self.payload.action_type

    @property
    def summary(self) -> str:
        return f"{self.user_name or 'Unknown user'} {describe(self.payload)}"
