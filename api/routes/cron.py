"""
api/routes/cron.py -- Scheduled maintenance endpoints.

Routes:
  GET /api/cron/reset-database  -- bulk reset (Authorization: Bearer CRON_SECRET)

The route middleware exempts /api/cron/ because the scheduler has no user
session; the shared secret is the only credential. Comparison is constant
time.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.models import CronResponse
from core.config import get_settings
from maintenance.reset import reset_database

logger = logging.getLogger("adminboard.api")

# Auth policy:
# - GET /api/cron/reset-database: CRON_SECRET bearer token, no user session
router = APIRouter()


def _authorized(request: Request) -> bool:
    header = request.headers.get("authorization", "")
    if not header.startswith("Bearer "):
        return False
    expected = f"Bearer {get_settings().cron_secret}"
    return secrets.compare_digest(header.encode("utf-8"), expected.encode("utf-8"))


@router.get("/cron/reset-database", response_model=CronResponse)
def reset_database_job(request: Request) -> JSONResponse:
    """Reset users, roles and the activity log to the seeded state."""
    if not _authorized(request):
        logger.warning(
            "Rejected cron reset from %s",
            request.client.host if request.client else "unknown",
        )
        return JSONResponse(status_code=401, content=CronResponse(ok=False, error="Unauthorized").model_dump())
    summary = reset_database(request.app.state.access_store, request.app.state.log_store)
    logger.info(
        "Cron reset complete (users=%d roles=%d logs=%d)",
        summary.users_deleted,
        summary.roles_deleted,
        summary.logs_deleted,
    )
    return JSONResponse(content=CronResponse(ok=True).model_dump(exclude_none=True))
