"""
actions/log_actions.py -- Activity log query, scoped to the caller's entities.
"""

from __future__ import annotations

from actions.base import ActionContext, action
from actions.schemas import GetLogsInput, LogEntryOut
from auth.guard import check_auth
from core.permissions import LOG_VIEW


@action("get_logs", schema=GetLogsInput)
def get_logs(ctx: ActionContext, data: GetLogsInput) -> list[LogEntryOut]:
    session = check_auth(ctx.request, LOG_VIEW)
    entries = ctx.log_store.get_logs(session.user.entity_ids, data.start_date, data.end_date)
    return [LogEntryOut.from_domain(e) for e in entries]
