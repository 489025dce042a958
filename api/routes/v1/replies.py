"""
api/routes/v1/replies.py -- Reply suggestion review workflow.

Routes:
  GET   /api/v1/replies?status=pending      -- list own suggestions (newest first)
  GET   /api/v1/replies/{reply_id}          -- one suggestion
  PATCH /api/v1/replies/{reply_id}          -- edit text; status becomes "edited"
  POST  /api/v1/replies/{reply_id}/approve  -- status "approved"
  POST  /api/v1/replies/{reply_id}/skip     -- status "skipped"
  POST  /api/v1/replies/{reply_id}/post     -- status "posted", stamps posted_at

All routes require a session.

IDOR guard: every store call passes current_user.id; the store's WHERE clause
requires both id and owner to match, so another user's reply is a 404.
A status change the reply's current status does not allow is a 409.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import ReplyEdit, ReplyResponse, ReplyStatusEnum
from auth.dependencies import get_current_user
from auth.models import User
from replies.store import InvalidTransitionError, ReplyStore

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "Reply not found."},
    )


def _conflict(exc: InvalidTransitionError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"code": "invalid_transition", "message": str(exc)},
    )


def _reload(store: ReplyStore, reply_id: int, user_id: str) -> ReplyResponse:
    reply = store.get(reply_id, user_id)
    if reply is None:
        raise _not_found()
    return ReplyResponse.from_reply(reply)


@router.get("/replies", response_model=list[ReplyResponse])
async def list_replies(
    request: Request,
    status: Optional[ReplyStatusEnum] = None,
    current_user: User = Depends(get_current_user),
) -> list[ReplyResponse]:
    store: ReplyStore = request.app.state.reply_store
    replies = store.list_for_user(current_user.id, status.value if status is not None else None)
    return [ReplyResponse.from_reply(r) for r in replies]


@router.get("/replies/{reply_id}", response_model=ReplyResponse)
async def get_reply(
    request: Request,
    reply_id: int,
    current_user: User = Depends(get_current_user),
) -> ReplyResponse:
    return _reload(request.app.state.reply_store, reply_id, current_user.id)


@router.patch("/replies/{reply_id}", response_model=ReplyResponse)
async def edit_reply(
    request: Request,
    reply_id: int,
    body: ReplyEdit,
    current_user: User = Depends(get_current_user),
) -> ReplyResponse:
    """Replace the reply text with the user's edit. The original suggestion is kept."""
    store: ReplyStore = request.app.state.reply_store
    try:
        updated = store.edit_reply(reply_id, current_user.id, body.text)
    except InvalidTransitionError as exc:
        raise _conflict(exc) from exc
    if not updated:
        raise _not_found()
    return _reload(store, reply_id, current_user.id)


def _transition(request: Request, reply_id: int, user: User, status: str) -> ReplyResponse:
    store: ReplyStore = request.app.state.reply_store
    try:
        updated = store.update_status(reply_id, user.id, status)
    except InvalidTransitionError as exc:
        raise _conflict(exc) from exc
    if not updated:
        raise _not_found()
    return _reload(store, reply_id, user.id)


@router.post("/replies/{reply_id}/approve", response_model=ReplyResponse)
async def approve_reply(
    request: Request,
    reply_id: int,
    current_user: User = Depends(get_current_user),
) -> ReplyResponse:
    return _transition(request, reply_id, current_user, "approved")


@router.post("/replies/{reply_id}/skip", response_model=ReplyResponse)
async def skip_reply(
    request: Request,
    reply_id: int,
    current_user: User = Depends(get_current_user),
) -> ReplyResponse:
    return _transition(request, reply_id, current_user, "skipped")


@router.post("/replies/{reply_id}/post", response_model=ReplyResponse)
async def post_reply(
    request: Request,
    reply_id: int,
    current_user: User = Depends(get_current_user),
) -> ReplyResponse:
    """Record the reply as posted. Nothing is sent to Twitter."""
    return _transition(request, reply_id, current_user, "posted")
