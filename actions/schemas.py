"""
Input and output models for the permission-checked actions.

Input models define the validation contract (presence, length bounds,
trimming). Output models define what leaves the server: they are built from
the domain dataclasses with from_domain() factories so secrets such as
password hashes never reach a response by accident.

Separation of concerns: auth/models.py and audit/models.py are the domain
truth; these models are the action contract.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

from audit.models import LogEntry, payload_to_detail
from auth.models import Entity, Role, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_Name = Annotated[str, Field(min_length=2, max_length=64)]
_Description = Annotated[str, Field(max_length=255)]
_Email = Annotated[str, Field(max_length=255, pattern=EMAIL_PATTERN)]
_Id = Annotated[int, Field(ge=1)]
# Passwords are used exactly as typed, whatever the model strips.
Password = Annotated[str, StringConstraints(strip_whitespace=False, min_length=8, max_length=128)]


class _Input(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


def _dedupe(values: list) -> list:
    seen: set = set()
    result: list = []
    for v in values:
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result


# ---------------------------------------------------------------------------
# Role inputs
# ---------------------------------------------------------------------------


class CreateRoleInput(_Input):
    name: _Name
    description: _Description = ""


class UpdateRoleInput(_Input):
    id: _Id
    name: _Name
    description: _Description


class RoleIdInput(_Input):
    id: _Id


class AssignPermissionsInput(_Input):
    role_id: _Id
    permission_codes: list[Annotated[str, Field(min_length=1, max_length=64)]] = Field(max_length=100)

    @field_validator("permission_codes")
    @classmethod
    def dedupe_codes(cls, values: list[str]) -> list[str]:
        return _dedupe(values)


# ---------------------------------------------------------------------------
# User inputs
# ---------------------------------------------------------------------------


class CreateUserInput(_Input):
    name: _Name
    email: _Email
    password: Password
    role_ids: list[_Id] = Field(default_factory=list, max_length=50)
    entity_ids: list[_Id] = Field(default_factory=list, max_length=200)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("role_ids", "entity_ids")
    @classmethod
    def dedupe_ids(cls, values: list[int]) -> list[int]:
        return _dedupe(values)


class UpdateUserInput(_Input):
    id: _Id
    name: _Name
    email: _Email

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class UserIdInput(_Input):
    id: _Id


class AssignRolesInput(_Input):
    user_id: _Id
    role_ids: list[_Id] = Field(max_length=50)

    @field_validator("role_ids")
    @classmethod
    def dedupe_ids(cls, values: list[int]) -> list[int]:
        return _dedupe(values)


class AssignEntitiesInput(_Input):
    user_id: _Id
    entity_ids: list[_Id] = Field(max_length=200)

    @field_validator("entity_ids")
    @classmethod
    def dedupe_ids(cls, values: list[int]) -> list[int]:
        return _dedupe(values)


class SetActiveInput(_Input):
    id: _Id
    active: bool


class SelectEntityInput(_Input):
    entity_id: _Id


class CreateInviteInput(_Input):
    name: _Name
    email: _Email
    expires_in_hours: int = Field(default=72, ge=1, le=168)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


# ---------------------------------------------------------------------------
# Entity inputs
# ---------------------------------------------------------------------------


class CreateEntityInput(_Input):
    name: _Name


class UpdateEntityInput(_Input):
    id: _Id
    name: _Name


# ---------------------------------------------------------------------------
# Log inputs
# ---------------------------------------------------------------------------


class GetLogsInput(_Input):
    start_date: datetime
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are taken as UTC so the range check can compare them."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def check_range(self) -> "GetLogsInput":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class PermissionOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str


class RoleOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    permissions: list[str]
    is_system_managed: bool

    @classmethod
    def from_domain(cls, role: Role) -> "RoleOut":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            permissions=sorted(role.permissions),
            is_system_managed=role.is_system_managed,
        )


class EntityOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    is_active: bool

    @classmethod
    def from_domain(cls, entity: Entity) -> "EntityOut":
        return cls(id=entity.id, name=entity.name, is_active=entity.is_active)


class RoleSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str


class UserOut(BaseModel):
    """A user as shown in the management table. No credential fields."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    is_active: bool
    email_verified: bool
    is_system_managed: bool
    selected_entity_id: Optional[int]
    created_at: str
    roles: list[RoleSummary]
    entities: list[EntityOut]

    @classmethod
    def from_domain(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            is_active=user.is_active,
            email_verified=user.email_verified,
            is_system_managed=user.is_system_managed,
            selected_entity_id=user.selected_entity_id,
            created_at=user.created_at or "",
            roles=[RoleSummary(id=r.id, name=r.name) for r in user.roles],
            entities=[EntityOut.from_domain(e) for e in user.entities],
        )


class LogEntryOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    type: str
    info: dict
    summary: str
    user_id: int
    user_name: str
    entity_id: Optional[int]
    entity_name: Optional[str]
    created_at: datetime

    @classmethod
    def from_domain(cls, entry: LogEntry) -> "LogEntryOut":
        return cls(
            id=entry.id,
            type=entry.action_type.value,
            info=payload_to_detail(entry.payload),
            summary=entry.summary,
            user_id=entry.user_id,
            user_name=entry.user_name,
            entity_id=entry.entity_id,
            entity_name=entry.entity_name,
            created_at=entry.created_at,
        )


class InviteOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: datetime


class DeletedOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    deleted: bool = True
