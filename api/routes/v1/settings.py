"""
api/routes/v1/settings.py -- Daily digest preferences.

Routes:
  GET /api/v1/settings/digest  -- current schedule
  PUT /api/v1/settings/digest  -- set time (HH:MM, 24h) and IANA timezone;
                                  marks the digest as configured

Both require a session. Validation lives in api.models.DigestPreferencesUpdate.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import DigestPreferences, DigestPreferencesUpdate
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore

router = APIRouter()


def _to_preferences(user: User) -> DigestPreferences:
    return DigestPreferences(
        daily_digest_time=user.daily_digest_time,
        timezone=user.timezone,
        digest_configured=user.digest_configured,
    )


@router.get("/settings/digest", response_model=DigestPreferences)
async def get_digest(current_user: User = Depends(get_current_user)) -> DigestPreferences:
    return _to_preferences(current_user)


@router.put("/settings/digest", response_model=DigestPreferences)
async def put_digest(
    request: Request,
    body: DigestPreferencesUpdate,
    current_user: User = Depends(get_current_user),
) -> DigestPreferences:
    """Save the digest schedule and return the stored values."""
    user_store: UserStore = request.app.state.user_store
    user_store.update_digest_preferences(current_user.id, body.daily_digest_time, body.timezone)
    updated = user_store.get_by_id(current_user.id)
    if updated is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return _to_preferences(updated)
