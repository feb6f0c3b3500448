"""
core/permissions.py -- The permission catalog.

Permission codes are a domain rule, not an API contract. Seeding, the guard
and the actions all import the codes from here so a typo fails at import time
instead of silently denying access.
"""

ROLE_CREATE = "role_create"
ROLE_EDIT = "role_edit"
ROLE_DELETE = "role_delete"

USER_VIEW = "user_view"
USER_CREATE = "user_create"
USER_EDIT = "user_edit"
USER_DELETE = "user_delete"
USER_DISABLE = "user_disable"

ENTITY_CREATE = "entity_create"
ENTITY_EDIT = "entity_edit"
ENTITY_DISABLE = "entity_disable"

LOG_VIEW = "log_view"

# Seed order is display order in the role editor.
ALL_PERMISSIONS: tuple[str, ...] = (
    ROLE_CREATE,
    ROLE_EDIT,
    ROLE_DELETE,
    USER_VIEW,
    USER_CREATE,
    USER_EDIT,
    USER_DELETE,
    USER_DISABLE,
    ENTITY_CREATE,
    ENTITY_EDIT,
    ENTITY_DISABLE,
    LOG_VIEW,
)
