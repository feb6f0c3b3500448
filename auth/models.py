"""
auth/models.py -- Domain dataclasses for users, roles, permissions and entities.

Pattern: Data class (pure data container, zero logic). Stores and actions do
the work; these classes own the domain shape.

Layer rule: no imports from api/, audit/, actions/ or maintenance/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Permission:
    code: str
    id: int | None = None


@dataclass
class Role:
    """A named bundle of permissions assignable to users.

    is_system_managed marks the Super Admin role: it cannot be edited or
    deleted, and holding it grants every permission in the catalog regardless
    of which permission rows are linked to it.
    """

    name: str
    description: str = ""
    id: int | None = None
    permissions: list[str] = field(default_factory=list)  # permission codes
    is_system_managed: bool = False


@dataclass
class Entity:
    """A tenancy/visibility scope grouping users and log entries."""

    name: str
    id: int | None = None
    is_active: bool = True


@dataclass
class User:
    """An account in the dashboard.

    hashed_password is None for invited users who have not signed up yet.
    selected_entity_id is the entity the user is currently working in; entity
    scoped audit events default to it.
    """

    name: str
    email: str
    id: int | None = None
    hashed_password: str | None = None
    is_active: bool = True
    email_verified: bool = False
    is_system_managed: bool = False
    selected_entity_id: int | None = None
    created_at: str | None = None
    roles: list[Role] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)

    @property
    def entity_ids(self) -> list[int]:
        return [e.id for e in self.entities if e.id is not None]


@dataclass(frozen=True)
class Session:
    """The resolved authenticated principal for one request.

    permissions is the effective set: the union of the permission codes of
    every assigned role.
    """

    user: User
    permissions: frozenset[str] = frozenset()

    def has_permission(self, code: str) -> bool:
        return code in self.permissions
