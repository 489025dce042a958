"""
api/routes/v1/auth.py -- Account and Twitter connection REST endpoints.

Routes:
  GET    /api/v1/auth/me               -- current user + whether Twitter is connected
  POST   /api/v1/auth/logout           -- delete the session row, clear the cookie
  DELETE /api/v1/auth/twitter          -- disconnect: remove stored Twitter tokens
  POST   /api/v1/auth/twitter/refresh  -- refresh stored Twitter tokens (single attempt)

Sign-in itself is the redirect flow in api/routes/twitter.py.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from api.models import MeResponse, MessageResponse
from auth.credentials import CredentialStore, refresh_stored_credentials
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE, clear_session_cookie

logger = logging.getLogger("xreply.api.auth")

# Auth policy:
# - GET    /api/v1/auth/me:               requires session (get_current_user)
# - POST   /api/v1/auth/logout:           public -- clearing a cookie needs no prior auth
# - DELETE /api/v1/auth/twitter:          requires session
# - POST   /api/v1/auth/twitter/refresh:  requires session
router = APIRouter()


@router.get("/auth/me", response_model=MeResponse)
async def me(request: Request, current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the signed-in user."""
    credential_store: CredentialStore = request.app.state.credential_store
    return MeResponse.from_user(current_user, credential_store.has_valid_credentials(current_user.id))


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request) -> JSONResponse:
    """Delete the server-side session (if any) and clear the cookie."""
    raw_token = request.cookies.get(SESSION_COOKIE, "")
    if raw_token:
        user_store: UserStore = request.app.state.user_store
        user_store.delete_session(raw_token)
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/auth/twitter", status_code=204)
async def disconnect_twitter(request: Request, current_user: User = Depends(get_current_user)) -> Response:
    """Remove the stored Twitter tokens. The dashboard login itself stays valid."""
    credential_store: CredentialStore = request.app.state.credential_store
    if not credential_store.remove_credentials(current_user.id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_connected", "message": "No Twitter account is connected."},
        )
    logger.info("User %s disconnected Twitter", current_user.id)
    return Response(status_code=204)


@router.post("/auth/twitter/refresh", response_model=MessageResponse)
def refresh_twitter(request: Request, current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Refresh the stored Twitter tokens once; no retry.

    Sync handler: the refresh grant is a blocking requests call, so FastAPI
    runs it in the threadpool.
    """
    credential_store: CredentialStore = request.app.state.credential_store
    if credential_store.get_credentials(current_user.id) is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_connected", "message": "No Twitter account is connected."},
        )
    if not refresh_stored_credentials(credential_store, current_user.id):
        raise HTTPException(
            status_code=502,
            detail={
                "code": "refresh_failed",
                "message": "Twitter did not issue new tokens. Reconnect your account.",
            },
        )
    return MessageResponse(message="Twitter tokens refreshed.")
