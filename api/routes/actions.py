"""
api/routes/actions.py -- HTTP entry point for permission-checked actions.

Routes:
  POST /api/actions/{action_name}  -- JSON body in, ActionResult envelope out

Guard failures, policy errors and unexpected exceptions all come back as
HTTP 200 with server_error set; validation failures come back with
validation_errors. Only an unknown action name is an HTTP error (404).

The body is read on the event loop; the action itself runs in the threadpool
because the stores block.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from actions import ActionContext, get_action
from api.models import ActionResponse

# Auth policy:
# - POST /api/actions/{name}: each action calls check_auth() itself with its
#   own permission; the router adds nothing on top.
router = APIRouter()


async def _read_json(request: Request):
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_json", "message": "Request body is not valid JSON."},
        ) from exc


@router.post("/actions/{action_name}", response_model=ActionResponse)
async def run_action(action_name: str, request: Request) -> ActionResponse:
    fn = get_action(action_name)
    if fn is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "unknown_action", "message": f"No action named {action_name!r}."},
        )
    payload = await _read_json(request)
    result = await run_in_threadpool(fn, ActionContext(request), payload)
    return ActionResponse(**result.model_dump())
