"""
api/routes/v1/targets.py -- Monitoring target management.

Routes:
  GET    /api/v1/targets?status=active   -- list own targets (newest first)
  POST   /api/v1/targets                 -- create a topic target (201)
  GET    /api/v1/targets/{target_id}     -- one target
  PUT    /api/v1/targets/{target_id}     -- partial update
  DELETE /api/v1/targets/{target_id}     -- delete target and its topic filter (204)

All routes require a session.

IDOR guard: every store call passes current_user.id, so another user's
target is a 404. A target without a name, or without any keyword or
hashtag, is a 400 invalid_target.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import TargetCreate, TargetResponse, TargetStatusEnum, TargetUpdate
from auth.dependencies import get_current_user
from auth.models import User
from targets.models import MonitoringTarget
from targets.store import InvalidTargetError, TargetStore

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "Target not found."},
    )


def _invalid(exc: InvalidTargetError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"code": "invalid_target", "message": str(exc)},
    )


def _reload(store: TargetStore, target_id: int, user_id: str) -> TargetResponse:
    target = store.get(target_id, user_id)
    if target is None:
        raise _not_found()
    return TargetResponse.from_target(target)


@router.get("/targets", response_model=list[TargetResponse])
async def list_targets(
    request: Request,
    status: Optional[TargetStatusEnum] = None,
    current_user: User = Depends(get_current_user),
) -> list[TargetResponse]:
    store: TargetStore = request.app.state.target_store
    targets = store.list_for_user(current_user.id, status.value if status is not None else None)
    return [TargetResponse.from_target(t) for t in targets]


@router.post("/targets", response_model=TargetResponse, status_code=201)
async def create_target(
    request: Request,
    body: TargetCreate,
    current_user: User = Depends(get_current_user),
) -> TargetResponse:
    store: TargetStore = request.app.state.target_store
    try:
        target_id = store.create_target(
            MonitoringTarget(
                user_id=current_user.id,
                name=body.name,
                keywords=body.keywords,
                hashtags=body.hashtags,
                exclude_keywords=body.exclude_keywords,
                min_engagement=body.min_engagement,
            )
        )
    except InvalidTargetError as exc:
        raise _invalid(exc) from exc
    return _reload(store, target_id, current_user.id)


@router.get("/targets/{target_id}", response_model=TargetResponse)
async def get_target(
    request: Request,
    target_id: int,
    current_user: User = Depends(get_current_user),
) -> TargetResponse:
    return _reload(request.app.state.target_store, target_id, current_user.id)


@router.put("/targets/{target_id}", response_model=TargetResponse)
async def update_target(
    request: Request,
    target_id: int,
    body: TargetUpdate,
    current_user: User = Depends(get_current_user),
) -> TargetResponse:
    """Change only the fields present in the body; null means "leave as is"."""
    store: TargetStore = request.app.state.target_store
    fields = {k: v for k, v in body.model_dump(exclude_unset=True, mode="json").items() if v is not None}
    try:
        updated = store.update_target(target_id, current_user.id, **fields)
    except InvalidTargetError as exc:
        raise _invalid(exc) from exc
    if not updated:
        raise _not_found()
    return _reload(store, target_id, current_user.id)


@router.delete("/targets/{target_id}", status_code=204)
async def delete_target(
    request: Request,
    target_id: int,
    current_user: User = Depends(get_current_user),
) -> Response:
    store: TargetStore = request.app.state.target_store
    if not store.delete_target(target_id, current_user.id):
        raise _not_found()
    return Response(status_code=204)
