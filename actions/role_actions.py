"""
actions/role_actions.py -- Role and permission management.

The system-managed role is refused on every mutation here. Holding it already
grants the whole catalog, so its permission rows are never edited.
"""

from __future__ import annotations

import logging

from actions.base import ActionContext, action
from actions.schemas import (
    AssignPermissionsInput,
    CreateRoleInput,
    DeletedOut,
    PermissionOut,
    RoleIdInput,
    RoleOut,
    UpdateRoleInput,
)
from audit.helpers import (
    add_role_create_log,
    add_role_delete_log,
    add_role_set_permission_log,
    add_role_update_log,
)
from auth.guard import check_auth
from auth.models import Role
from auth.store import AccessStore
from core.errors import NotFoundError, PolicyViolationError, ValidationFailedError
from core.permissions import ROLE_CREATE, ROLE_DELETE, ROLE_EDIT

logger = logging.getLogger("adminboard.actions")


def _load_mutable_role(store: AccessStore, role_id: int) -> Role:
    role = store.get_role(role_id)
    if role is None:
        raise NotFoundError(f"Role {role_id} not found")
    if role.is_system_managed:
        raise PolicyViolationError(f"Role {role_id} is system-managed")
    return role


@action("get_roles")
def get_roles(ctx: ActionContext) -> list[RoleOut]:
    check_auth(ctx.request)
    return [RoleOut.from_domain(r) for r in ctx.store.list_roles()]


@action("get_permissions")
def get_permissions(ctx: ActionContext) -> list[PermissionOut]:
    check_auth(ctx.request)
    return [PermissionOut(code=p.code) for p in ctx.store.list_permissions()]


@action("create_role", schema=CreateRoleInput)
def create_role(ctx: ActionContext, data: CreateRoleInput) -> RoleOut:
    check_auth(ctx.request, ROLE_CREATE)
    role_id = ctx.store.create_role(Role(name=data.name, description=data.description))
    role = ctx.store.get_role(role_id)
    add_role_create_log(ctx.writer, role)
    return RoleOut.from_domain(role)


@action("update_role", schema=UpdateRoleInput)
def update_role(ctx: ActionContext, data: UpdateRoleInput) -> RoleOut:
    check_auth(ctx.request, ROLE_EDIT)
    _load_mutable_role(ctx.store, data.id)
    ctx.store.update_role(data.id, name=data.name, description=data.description)
    role = ctx.store.get_role(data.id)
    add_role_update_log(ctx.writer, role)
    return RoleOut.from_domain(role)


@action("delete_role", schema=RoleIdInput)
def delete_role(ctx: ActionContext, data: RoleIdInput) -> DeletedOut:
    check_auth(ctx.request, ROLE_DELETE)
    role = _load_mutable_role(ctx.store, data.id)
    ctx.store.delete_role(role.id)
    add_role_delete_log(ctx.writer, role)
    return DeletedOut(id=role.id)


@action("assign_permissions_to_role", schema=AssignPermissionsInput)
def assign_permissions_to_role(ctx: ActionContext, data: AssignPermissionsInput) -> RoleOut:
    check_auth(ctx.request, ROLE_EDIT)
    _load_mutable_role(ctx.store, data.role_id)
    known = {p.code for p in ctx.store.list_permissions()}
    unknown = [c for c in data.permission_codes if c not in known]
    if unknown:
        raise ValidationFailedError(f"Unknown permission codes: {unknown!r}")
    ctx.store.set_role_permissions(data.role_id, data.permission_codes)
    role = ctx.store.get_role(data.role_id)
    add_role_set_permission_log(ctx.writer, role)
    logger.info("Role %d permissions set to %s", role.id, sorted(role.permissions))
    return RoleOut.from_domain(role)
