"""
auth/store.py -- SQLAlchemy Core persistence layer for users, roles,
permissions and entities.

Pattern: Repository + Data Mapper. AccessStore is the repository; the _row_to_*
functions are the mappers. Action and dependency code never touches SQL
directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Association tables (user_roles, user_entities, role_permissions) are cleaned
up in code on delete because SQLite does not enforce foreign keys unless the
foreign_keys PRAGMA is on for every connection.

metadata is public: audit/store.py registers the logs table on it so one
create_all() builds the whole schema and the log query can join users and
entities.

Layer rule: no imports from api/, audit/, actions/ or maintenance/.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Entity, Permission, Role, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(64), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),  # NULL until the invited user signs up
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("is_system_managed", Integer, nullable=False, server_default="0"),
    Column("selected_entity_id", Integer),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(64), nullable=False),
    Column("description", String(255), nullable=False, server_default=""),
    Column("is_system_managed", Integer, nullable=False, server_default="0"),
)

_permissions = Table(
    "permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(64), nullable=False, unique=True),
)

_entities = Table(
    "entities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(64), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_user_roles = Table(
    "user_roles",
    metadata,
    Column("user_id", Integer, nullable=False),
    Column("role_id", Integer, nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_role"),
)

_user_entities = Table(
    "user_entities",
    metadata,
    Column("user_id", Integer, nullable=False),
    Column("entity_id", Integer, nullable=False),
    UniqueConstraint("user_id", "entity_id", name="uq_user_entity"),
)

_role_permissions = Table(
    "role_permissions",
    metadata,
    Column("role_id", Integer, nullable=False),
    Column("permission_code", String(64), nullable=False),
    UniqueConstraint("role_id", "permission_code", name="uq_role_permission"),
)

# Exposed for the log query join in audit/store.py.
users_table = _users
entities_table = _entities


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite settings every store needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # TestClient and the audit writer touch the store from worker threads.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unique(ids: Iterable) -> list:
    """Deduplicate while preserving order."""
    seen: set = set()
    result: list = []
    for v in ids:
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccessStore:
    """Repository for User, Role, Permission and Entity records.

    Usage:
        store = AccessStore()
        role_id = store.create_role(Role(name="Editor"))
        store.set_role_permissions(role_id, ["role_edit"])
        uid = store.create_user(User(name="Ann", email="ann@example.com"), role_ids=[role_id])
        store.get_effective_permissions(uid)   # frozenset({"role_edit"})
        store.close()
    """

    # Fields update_user() accepts. Everything else goes through a dedicated
    # method so invariants (system flag, associations) stay in one place.
    _USER_FIELDS: set = {"name", "email", "hashed_password", "is_active", "email_verified", "selected_entity_id"}
    _ROLE_FIELDS: set = {"name", "description"}
    _ENTITY_FIELDS: set = {"name", "is_active"}

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User, role_ids: Iterable[int] = (), entity_ids: Iterable[int] = ()) -> int:
        """Insert a user with its role and entity links; return the new ID.

        The selected entity defaults to the first assigned entity. Raises
        sqlalchemy.exc.IntegrityError if the email is already taken.
        """
        entity_ids = _unique(entity_ids)
        selected = user.selected_entity_id
        if selected is None and entity_ids:
            selected = entity_ids[0]
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    is_active=1 if user.is_active else 0,
                    email_verified=1 if user.email_verified else 0,
                    is_system_managed=1 if user.is_system_managed else 0,
                    selected_entity_id=selected,
                    created_at=_now_iso(),
                )
            )
            user_id = result.inserted_primary_key[0]
            for role_id in _unique(role_ids):
                conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
            for entity_id in entity_ids:
                conn.execute(_user_entities.insert().values(user_id=user_id, entity_id=entity_id))
            conn.commit()
        return user_id

    def get_user(self, user_id: int) -> User | None:
        """Look up a user by primary key, roles and entities included."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                return None
            return self._hydrate_users(conn, [row])[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == email.strip().lower())).fetchone()
            if row is None:
                return None
            return self._hydrate_users(conn, [row])[0]

    def list_users(self) -> list[User]:
        """Return all users ordered by name, roles and entities included."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.name, _users.c.id)).fetchall()
            return self._hydrate_users(conn, rows)

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on a user. Returns False if user_id was not found.

        Unknown field names raise ValueError rather than being ignored.
        """
        unknown = set(fields) - self._USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        for flag in ("is_active", "email_verified"):
            if flag in fields:
                fields[flag] = 1 if fields[flag] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user and its role/entity links. Returns False if not found.

        Policy checks (system-managed, self-deletion) are the caller's job.
        Log entries written by the user are kept.
        """
        with self.engine.connect() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            conn.execute(_user_entities.delete().where(_user_entities.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def set_user_roles(self, user_id: int, role_ids: Iterable[int]) -> None:
        """Replace the user's role set."""
        with self.engine.connect() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            for role_id in _unique(role_ids):
                conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
            conn.commit()

    def set_user_entities(self, user_id: int, entity_ids: Iterable[int]) -> None:
        """Replace the user's entity set.

        If the selected entity is no longer assigned, selection moves to the
        first assigned entity (or NULL when none are left).
        """
        entity_ids = _unique(entity_ids)
        with self.engine.connect() as conn:
            conn.execute(_user_entities.delete().where(_user_entities.c.user_id == user_id))
            for entity_id in entity_ids:
                conn.execute(_user_entities.insert().values(user_id=user_id, entity_id=entity_id))
            selected = conn.execute(select(_users.c.selected_entity_id).where(_users.c.id == user_id)).scalar()
            if selected not in entity_ids:
                conn.execute(
                    _users.update()
                    .where(_users.c.id == user_id)
                    .values(selected_entity_id=entity_ids[0] if entity_ids else None)
                )
            conn.commit()

    def get_effective_permissions(self, user_id: int) -> frozenset[str]:
        """Return the union of permission codes across the user's roles.

        A system-managed role grants every permission known to the store.
        """
        with self.engine.connect() as conn:
            roles = conn.execute(
                select(_roles.c.id, _roles.c.is_system_managed)
                .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
                .where(_user_roles.c.user_id == user_id)
            ).fetchall()
            if any(r.is_system_managed for r in roles):
                codes = conn.execute(select(_permissions.c.code)).scalars().all()
            else:
                codes = conn.execute(
                    select(_role_permissions.c.permission_code).where(
                        _role_permissions.c.role_id.in_([r.id for r in roles])
                    )
                ).scalars().all()
        return frozenset(codes)

    def delete_unmanaged_users(self) -> int:
        """Delete every user that is not system-managed. Returns the count removed."""
        with self.engine.connect() as conn:
            doomed = select(_users.c.id).where(_users.c.is_system_managed == 0)
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id.in_(doomed)))
            conn.execute(_user_entities.delete().where(_user_entities.c.user_id.in_(doomed)))
            result = conn.execute(_users.delete().where(_users.c.is_system_managed == 0))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _roles.insert().values(
                    name=role.name,
                    description=role.description,
                    is_system_managed=1 if role.is_system_managed else 0,
                )
            )
            role_id = result.inserted_primary_key[0]
            for code in _unique(role.permissions):
                conn.execute(_role_permissions.insert().values(role_id=role_id, permission_code=code))
            conn.commit()
        return role_id

    def get_role(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
            if row is None:
                return None
            return self._hydrate_roles(conn, [row])[0]

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
            if row is None:
                return None
            return self._hydrate_roles(conn, [row])[0]

    def list_roles(self) -> list[Role]:
        """Return all roles with their permission codes, ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.name, _roles.c.id)).fetchall()
            return self._hydrate_roles(conn, rows)

    def update_role(self, role_id: int, **fields) -> bool:
        unknown = set(fields) - self._ROLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown role fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role, unlinking it from users and permissions."""
        with self.engine.connect() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.role_id == role_id))
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id == role_id))
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0

    def set_role_permissions(self, role_id: int, codes: Iterable[str]) -> None:
        """Replace the role's permission set.

        Raises ValueError if any code is not in the permissions table.
        """
        codes = _unique(codes)
        with self.engine.connect() as conn:
            known = set(
                conn.execute(select(_permissions.c.code).where(_permissions.c.code.in_(codes))).scalars().all()
            )
            missing = [c for c in codes if c not in known]
            if missing:
                raise ValueError(f"Unknown permission codes: {missing!r}")
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id == role_id))
            for code in codes:
                conn.execute(_role_permissions.insert().values(role_id=role_id, permission_code=code))
            conn.commit()

    def delete_unmanaged_roles(self) -> int:
        with self.engine.connect() as conn:
            doomed = select(_roles.c.id).where(_roles.c.is_system_managed == 0)
            conn.execute(_user_roles.delete().where(_user_roles.c.role_id.in_(doomed)))
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id.in_(doomed)))
            result = conn.execute(_roles.delete().where(_roles.c.is_system_managed == 0))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def ensure_permission(self, code: str) -> None:
        """Insert a permission code if it is not present. Idempotent."""
        with self.engine.connect() as conn:
            exists = conn.execute(select(_permissions.c.id).where(_permissions.c.code == code)).first()
            if exists is None:
                conn.execute(_permissions.insert().values(code=code))
                conn.commit()

    def list_permissions(self) -> list[Permission]:
        with self.engine.connect() as conn:
            rows = conn.execute(_permissions.select().order_by(_permissions.c.id)).fetchall()
        return [Permission(id=r.id, code=r.code) for r in rows]

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity(self, entity: Entity) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_entities.insert().values(name=entity.name, is_active=1 if entity.is_active else 0))
            conn.commit()
            return result.inserted_primary_key[0]

    def get_entity(self, entity_id: int) -> Entity | None:
        with self.engine.connect() as conn:
            row = conn.execute(_entities.select().where(_entities.c.id == entity_id)).fetchone()
        return _row_to_entity(row) if row is not None else None

    def get_entity_by_name(self, name: str) -> Entity | None:
        with self.engine.connect() as conn:
            row = conn.execute(_entities.select().where(_entities.c.name == name)).fetchone()
        return _row_to_entity(row) if row is not None else None

    def list_entities(self) -> list[Entity]:
        with self.engine.connect() as conn:
            rows = conn.execute(_entities.select().order_by(_entities.c.name, _entities.c.id)).fetchall()
        return [_row_to_entity(r) for r in rows]

    def update_entity(self, entity_id: int, **fields) -> bool:
        unknown = set(fields) - self._ENTITY_FIELDS
        if unknown:
            raise ValueError(f"Unknown entity fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_entities.update().where(_entities.c.id == entity_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Hydration -- one query per association instead of one per row
    # ------------------------------------------------------------------

    def _hydrate_roles(self, conn, rows) -> list[Role]:
        role_ids = [r.id for r in rows]
        links = conn.execute(
            select(_role_permissions.c.role_id, _role_permissions.c.permission_code)
            .where(_role_permissions.c.role_id.in_(role_ids))
            .order_by(_role_permissions.c.permission_code)
        ).fetchall()
        codes_by_role: dict[int, list[str]] = {rid: [] for rid in role_ids}
        for link in links:
            codes_by_role[link.role_id].append(link.permission_code)
        return [_row_to_role(r, codes_by_role[r.id]) for r in rows]

    def _hydrate_users(self, conn, rows) -> list[User]:
        user_ids = [r.id for r in rows]

        role_links = conn.execute(
            select(_user_roles.c.user_id, _roles)
            .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
            .where(_user_roles.c.user_id.in_(user_ids))
            .order_by(_roles.c.name)
        ).fetchall()
        roles_by_id = {r.id: r for r in self._hydrate_roles(conn, _distinct_by_id(role_links))}
        roles_by_user: dict[int, list[Role]] = {uid: [] for uid in user_ids}
        for link in role_links:
            roles_by_user[link.user_id].append(roles_by_id[link.id])

        entity_links = conn.execute(
            select(_user_entities.c.user_id, _entities)
            .select_from(_user_entities.join(_entities, _user_entities.c.entity_id == _entities.c.id))
            .where(_user_entities.c.user_id.in_(user_ids))
            .order_by(_entities.c.name)
        ).fetchall()
        entities_by_user: dict[int, list[Entity]] = {uid: [] for uid in user_ids}
        for link in entity_links:
            entities_by_user[link.user_id].append(_row_to_entity(link))

        return [_row_to_user(r, roles_by_user[r.id], entities_by_user[r.id]) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _distinct_by_id(rows) -> list:
    seen: dict = {}
    for r in rows:
        seen.setdefault(r.id, r)
    return list(seen.values())


def _row_to_user(row, roles: list[Role], entities: list[Entity]) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        is_active=bool(row.is_active),
        email_verified=bool(row.email_verified),
        is_system_managed=bool(row.is_system_managed),
        selected_entity_id=row.selected_entity_id,
        created_at=row.created_at,
        roles=roles,
        entities=entities,
    )


def _row_to_role(row, codes: list[str]) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description or "",
        permissions=codes,
        is_system_managed=bool(row.is_system_managed),
    )


def _row_to_entity(row) -> Entity:
    return Entity(id=row.id, name=row.name, is_active=bool(row.is_active))
