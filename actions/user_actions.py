"""
actions/user_actions.py -- User management, entity selection and invitations.

Policy:
  - system-managed users cannot be edited, deleted or disabled.
  - nobody can delete or disable their own account.
  - role and entity ids must exist; unknown ids fail the whole call before any
    write happens.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from actions.base import ActionContext, action
from actions.schemas import (
    AssignEntitiesInput,
    AssignRolesInput,
    CreateInviteInput,
    CreateUserInput,
    DeletedOut,
    InviteOut,
    SelectEntityInput,
    SetActiveInput,
    UpdateUserInput,
    UserIdInput,
    UserOut,
)
from audit.helpers import (
    add_user_create_log,
    add_user_delete_log,
    add_user_disable_log,
    add_user_email_verified_log,
    add_user_enable_log,
    add_user_set_entity_log,
    add_user_set_role_log,
    add_user_update_log,
)
from auth.guard import check_auth
from auth.models import Session, User
from auth.store import AccessStore
from auth.tokens import create_invite_token, hash_password
from core.errors import NotFoundError, PolicyViolationError, ValidationFailedError
from core.permissions import USER_CREATE, USER_DELETE, USER_DISABLE, USER_EDIT, USER_VIEW

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_user(store: AccessStore, user_id: int) -> User:
    user = store.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _load_mutable_user(store: AccessStore, user_id: int) -> User:
    user = _load_user(store, user_id)
    if user.is_system_managed:
        raise PolicyViolationError(f"User {user_id} is system-managed")
    return user


def _refuse_self(session: Session, user_id: int, verb: str) -> None:
    if session.user.id == user_id:
        raise PolicyViolationError(f"Cannot {verb} your own account")


def _check_role_ids(store: AccessStore, role_ids: list[int]) -> None:
    known = {r.id for r in store.list_roles()}
    missing = [i for i in role_ids if i not in known]
    if missing:
        raise ValidationFailedError(f"Unknown role ids: {missing!r}")


def _check_entity_ids(store: AccessStore, entity_ids: list[int]) -> None:
    known = {e.id for e in store.list_entities()}
    missing = [i for i in entity_ids if i not in known]
    if missing:
        raise ValidationFailedError(f"Unknown entity ids: {missing!r}")


def _check_email_free(store: AccessStore, email: str, user_id: int | None = None) -> None:
    existing = store.get_by_email(email)
    if existing is not None and existing.id != user_id:
        raise ValidationFailedError("Email already registered")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@action("get_users")
def get_users(ctx: ActionContext) -> list[UserOut]:
    check_auth(ctx.request, USER_VIEW)
    return [UserOut.from_domain(u) for u in ctx.store.list_users()]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@action("create_user", schema=CreateUserInput)
def create_user(ctx: ActionContext, data: CreateUserInput) -> UserOut:
    check_auth(ctx.request, USER_CREATE)
    _check_email_free(ctx.store, data.email)
    _check_role_ids(ctx.store, data.role_ids)
    _check_entity_ids(ctx.store, data.entity_ids)
    try:
        user_id = ctx.store.create_user(
            User(name=data.name, email=data.email, hashed_password=hash_password(data.password)),
            role_ids=data.role_ids,
            entity_ids=data.entity_ids,
        )
    except IntegrityError as exc:
        # Lost a race with a concurrent create for the same email.
        raise ValidationFailedError("Email already registered") from exc
    user = ctx.store.get_user(user_id)
    add_user_create_log(ctx.writer, user)
    return UserOut.from_domain(user)


@action("update_user", schema=UpdateUserInput)
def update_user(ctx: ActionContext, data: UpdateUserInput) -> UserOut:
    check_auth(ctx.request, USER_EDIT)
    _load_mutable_user(ctx.store, data.id)
    _check_email_free(ctx.store, data.email, user_id=data.id)
    ctx.store.update_user(data.id, name=data.name, email=data.email)
    user = ctx.store.get_user(data.id)
    add_user_update_log(ctx.writer, user)
    return UserOut.from_domain(user)


@action("delete_user", schema=UserIdInput)
def delete_user(ctx: ActionContext, data: UserIdInput) -> DeletedOut:
    session = check_auth(ctx.request, USER_DELETE)
    _refuse_self(session, data.id, "delete")
    user = _load_mutable_user(ctx.store, data.id)
    ctx.store.delete_user(user.id)
    add_user_delete_log(ctx.writer, user)
    return DeletedOut(id=user.id)


@action("assign_roles_to_user", schema=AssignRolesInput)
def assign_roles_to_user(ctx: ActionContext, data: AssignRolesInput) -> UserOut:
    check_auth(ctx.request, USER_EDIT)
    _load_mutable_user(ctx.store, data.user_id)
    _check_role_ids(ctx.store, data.role_ids)
    ctx.store.set_user_roles(data.user_id, data.role_ids)
    user = ctx.store.get_user(data.user_id)
    add_user_set_role_log(ctx.writer, user)
    return UserOut.from_domain(user)


@action("assign_entities_to_user", schema=AssignEntitiesInput)
def assign_entities_to_user(ctx: ActionContext, data: AssignEntitiesInput) -> UserOut:
    check_auth(ctx.request, USER_EDIT)
    _load_mutable_user(ctx.store, data.user_id)
    _check_entity_ids(ctx.store, data.entity_ids)
    ctx.store.set_user_entities(data.user_id, data.entity_ids)
    user = ctx.store.get_user(data.user_id)
    add_user_set_entity_log(ctx.writer, user)
    return UserOut.from_domain(user)


@action("set_user_active", schema=SetActiveInput)
def set_user_active(ctx: ActionContext, data: SetActiveInput) -> UserOut:
    session = check_auth(ctx.request, USER_DISABLE)
    if not data.active:
        _refuse_self(session, data.id, "disable")
    _load_mutable_user(ctx.store, data.id)
    ctx.store.update_user(data.id, is_active=data.active)
    user = ctx.store.get_user(data.id)
    if data.active:
        add_user_enable_log(ctx.writer, user)
    else:
        add_user_disable_log(ctx.writer, user)
    return UserOut.from_domain(user)


@action("verify_user_email", schema=UserIdInput)
def verify_user_email(ctx: ActionContext, data: UserIdInput) -> UserOut:
    check_auth(ctx.request, USER_EDIT)
    _load_mutable_user(ctx.store, data.id)
    ctx.store.update_user(data.id, email_verified=True)
    user = ctx.store.get_user(data.id)
    add_user_email_verified_log(ctx.writer, user)
    return UserOut.from_domain(user)


@action("select_entity", schema=SelectEntityInput)
def select_entity(ctx: ActionContext, data: SelectEntityInput) -> UserOut:
    session = check_auth(ctx.request)
    if data.entity_id not in session.user.entity_ids:
        raise PolicyViolationError(f"Entity {data.entity_id} is not assigned to user {session.user.id}")
    ctx.store.update_user(session.user.id, selected_entity_id=data.entity_id)
    return UserOut.from_domain(ctx.store.get_user(session.user.id))


@action("create_invite", schema=CreateInviteInput)
def create_invite(ctx: ActionContext, data: CreateInviteInput) -> InviteOut:
    check_auth(ctx.request, USER_CREATE)
    _check_email_free(ctx.store, data.email)
    expires_at = datetime.now(timezone.utc) + timedelta(hours=data.expires_in_hours)
    return InviteOut(token=create_invite_token(data.name, data.email, expires_at), expires_at=expires_at)
