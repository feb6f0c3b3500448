"""
audit/store.py -- SQLAlchemy Core persistence for the activity log.

Pattern: Repository + Data Mapper, same as auth/store.py. The logs table is
registered on auth.store.metadata so the query can outer-join the acting user
and the entity for display names, and so one create_all() builds everything.

The table is append-only: there is no update method, and rows are removed
only by clear() during a bulk reset.

Timestamps are stored as naive UTC datetimes (SQLite has no timezone type)
and returned timezone-aware.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, Table, Text, func, or_, select

from audit.models import LogEntry, LogRecord, payload_from_detail, payload_to_detail
from auth.store import entities_table, make_engine, metadata, users_table
from core.config import get_settings

logger = logging.getLogger("adminboard.audit")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_logs = Table(
    "logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("action_type", String(40), nullable=False),
    Column("action_detail", Text, nullable=False),  # JSON object
    Column("user_id", Integer, nullable=False),
    Column("entity_id", Integer),  # NULL for user/role events
    Column("action_date", DateTime, nullable=False),
    Index("ix_logs_action_date", "action_date"),
    Index("ix_logs_entity_id", "entity_id"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_naive_utc(dt: datetime) -> datetime:
    """Normalize to naive UTC for storage and comparison. Naive input is taken as UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class LogStore:
    """Repository for LogRecord / LogEntry.

    Usage:
        logs = LogStore()
        logs.append(LogRecord(payload=RoleCreated(Ref(1, "Editor")), user_id=7))
        entries = logs.get_logs([1, 2], start_date=datetime(2025, 1, 1, tzinfo=timezone.utc))
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    def append(self, record: LogRecord, at: datetime | None = None) -> int:
        """Insert one record and return its ID. at defaults to now (UTC)."""
        action_date = _to_naive_utc(at) if at is not None else _to_naive_utc(datetime.now(timezone.utc))
        with self.engine.connect() as conn:
            result = conn.execute(
                _logs.insert().values(
                    action_type=record.action_type.value,
                    action_detail=json.dumps(payload_to_detail(record.payload)),
                    user_id=record.user_id,
                    entity_id=record.entity_id,
                    action_date=action_date,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_logs(
        self,
        entity_ids: Iterable[int],
        start_date: datetime,
        end_date: datetime | None = None,
    ) -> list[LogEntry]:
        """Return entries visible to a caller scoped to entity_ids.

        Visible means entity_id is in entity_ids, or entity_id is NULL (global
        user/role events). Only entries with start_date <= action_date <=
        end_date are returned, newest first. end_date defaults to now.

        Rows whose detail no longer parses are skipped with a warning.
        """
        end = _to_naive_utc(end_date) if end_date is not None else _to_naive_utc(datetime.now(timezone.utc))
        start = _to_naive_utc(start_date)
        stmt = (
            select(
                _logs,
                users_table.c.name.label("user_name"),
                entities_table.c.name.label("entity_name"),
            )
            .select_from(
                _logs.outerjoin(users_table, _logs.c.user_id == users_table.c.id).outerjoin(
                    entities_table, _logs.c.entity_id == entities_table.c.id
                )
            )
            .where(
                or_(_logs.c.entity_id.in_(list(entity_ids)), _logs.c.entity_id.is_(None)),
                _logs.c.action_date >= start,
                _logs.c.action_date <= end,
            )
            .order_by(_logs.c.action_date.desc(), _logs.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()

        entries: list[LogEntry] = []
        for row in rows:
            try:
                entries.append(_row_to_entry(row))
            except (ValueError, KeyError, TypeError):
                logger.warning("Skipping malformed log row id=%s type=%s", row.id, row.action_type)
        return entries

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_logs)).scalar() or 0

    def clear(self) -> int:
        """Delete every log entry. Bulk reset only. Returns the count removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_logs.delete())
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_entry(row) -> LogEntry:
    return LogEntry(
        id=row.id,
        payload=payload_from_detail(row.action_type, json.loads(row.action_detail)),
        user_id=row.user_id,
        user_name=row.user_name or "",
        entity_id=row.entity_id,
        entity_name=row.entity_name,
        created_at=row.action_date.replace(tzinfo=timezone.utc),
    )
