"""
actions/entity_actions.py -- Entity management.

Entity events are logged against the entity they touch, not the caller's
selected entity, so they stay visible to everyone assigned to it.
"""

from __future__ import annotations

from actions.base import ActionContext, action
from actions.schemas import CreateEntityInput, EntityOut, SetActiveInput, UpdateEntityInput
from audit.helpers import (
    add_entity_create_log,
    add_entity_disable_log,
    add_entity_enable_log,
    add_entity_update_log,
)
from auth.guard import check_auth
from auth.models import Entity
from core.errors import NotFoundError
from core.permissions import ENTITY_CREATE, ENTITY_DISABLE, ENTITY_EDIT


@action("get_entities")
def get_entities(ctx: ActionContext) -> list[EntityOut]:
    check_auth(ctx.request)
    return [EntityOut.from_domain(e) for e in ctx.store.list_entities()]


@action("create_entity", schema=CreateEntityInput)
def create_entity(ctx: ActionContext, data: CreateEntityInput) -> EntityOut:
    check_auth(ctx.request, ENTITY_CREATE)
    entity_id = ctx.store.create_entity(Entity(name=data.name))
    entity = ctx.store.get_entity(entity_id)
    add_entity_create_log(ctx.writer, entity, entity_id=entity.id)
    return EntityOut.from_domain(entity)


@action("update_entity", schema=UpdateEntityInput)
def update_entity(ctx: ActionContext, data: UpdateEntityInput) -> EntityOut:
    check_auth(ctx.request, ENTITY_EDIT)
    if not ctx.store.update_entity(data.id, name=data.name):
        raise NotFoundError(f"Entity {data.id} not found")
    entity = ctx.store.get_entity(data.id)
    add_entity_update_log(ctx.writer, entity, entity_id=entity.id)
    return EntityOut.from_domain(entity)


@action("set_entity_active", schema=SetActiveInput)
def set_entity_active(ctx: ActionContext, data: SetActiveInput) -> EntityOut:
    check_auth(ctx.request, ENTITY_DISABLE)
    if not ctx.store.update_entity(data.id, is_active=data.active):
        raise NotFoundError(f"Entity {data.id} not found")
    entity = ctx.store.get_entity(data.id)
    if data.active:
        add_entity_enable_log(ctx.writer, entity, entity_id=entity.id)
    else:
        add_entity_disable_log(ctx.writer, entity, entity_id=entity.id)
    return EntityOut.from_domain(entity)
