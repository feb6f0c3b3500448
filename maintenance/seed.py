"""
maintenance/seed.py -- Idempotent default data.

seed_defaults() may run on every startup. Each step checks before it writes:

  1. permission catalog (core.permissions.ALL_PERMISSIONS)
  2. the system-managed Super Admin role
  3. the default entities
  4. the system-managed admin user, holding Super Admin and every default
     entity

An existing admin user is left alone, password included. With no
admin_password configured the admin user is created without one and cannot
sign in until it is set through sign-up or the CLI.
"""

from __future__ import annotations

import logging

from auth.models import Entity, Role, User
from auth.store import AccessStore
from auth.tokens import hash_password
from core.permissions import ALL_PERMISSIONS

logger = logging.getLogger("adminboard.maintenance")

SUPER_ADMIN_ROLE = "Super Admin"
DEFAULT_ENTITIES: tuple[str, ...] = ("Entity 1", "Entity 2")
ADMIN_NAME = "Admin"


def seed_defaults(store: AccessStore, admin_email: str, admin_password: str = "") -> User:
    """Upsert the defaults and return the admin user."""
    for code in ALL_PERMISSIONS:
        store.ensure_permission(code)

    role = store.get_role_by_name(SUPER_ADMIN_ROLE)
    if role is None:
        role_id = store.create_role(
            Role(
                name=SUPER_ADMIN_ROLE,
                description="Full access. Cannot be edited or deleted.",
                permissions=list(ALL_PERMISSIONS),
                is_system_managed=True,
            )
        )
        logger.info("Seeded role %r (id=%d)", SUPER_ADMIN_ROLE, role_id)
    else:
        role_id = role.id

    entity_ids: list[int] = []
    for name in DEFAULT_ENTITIES:
        entity = store.get_entity_by_name(name)
        if entity is None:
            entity_ids.append(store.create_entity(Entity(name=name)))
            logger.info("Seeded entity %r", name)
        else:
            entity_ids.append(entity.id)

    admin = store.get_by_email(admin_email)
    if admin is None:
        if not admin_password:
            logger.warning("ADMIN_PASSWORD not set; admin user %s created without a password", admin_email)
        user_id = store.create_user(
            User(
                name=ADMIN_NAME,
                email=admin_email.strip().lower(),
                hashed_password=hash_password(admin_password) if admin_password else None,
                email_verified=True,
                is_system_managed=True,
            ),
            role_ids=[role_id],
            entity_ids=entity_ids,
        )
        logger.info("Seeded admin user %s (id=%d)", admin_email, user_id)
        admin = store.get_user(user_id)
    return admin
