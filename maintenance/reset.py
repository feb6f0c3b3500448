"""
maintenance/reset.py -- Bulk reset back to the seeded state.

Keeps system-managed users and roles, the permission catalog and entities.
Everything else created through the dashboard goes, including every log
entry. Nothing about the reset itself is written to the activity log: the
log is exactly what is being cleared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from audit.store import LogStore
from auth.store import AccessStore

logger = logging.getLogger("adminboard.maintenance")


@dataclass(frozen=True)
class ResetSummary:
    users_deleted: int
    roles_deleted: int
    logs_deleted: int


def reset_database(store: AccessStore, log_store: LogStore) -> ResetSummary:
    """Delete non-system-managed users and roles, then every log entry."""
    users = store.delete_unmanaged_users()
    roles = store.delete_unmanaged_roles()
    logs = log_store.clear()
    logger.warning("Database reset: users=%d roles=%d logs=%d", users, roles, logs)
    return ResetSummary(users_deleted=users, roles_deleted=roles, logs_deleted=logs)
