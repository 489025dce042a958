"""
api/routes/twitter.py -- Twitter (X) OAuth 2.0 sign-in: initiator and callback.

Routes:
  GET /api/auth/twitter?action=login  -- start authorization, 302 to Twitter
  GET /api/auth/twitter/callback      -- finish authorization, 302 into the app

The callback never renders an error itself. Every failure is a 302 to
/auth/error?error=<code>, where the web layer maps the code through a
whitelist. Codes, in the order the checks run:
  <provider value>         -- Twitter sent ?error= (e.g. access_denied)
  no_code                  -- no ?code= on the callback
  state_mismatch           -- no pending authorization, expired, or wrong state
  token_exchange_failed    -- token endpoint failed or returned no access_token
  profile_fetch_failed     -- users/me failed or returned no data.id
  user_creation_failed     -- database error while resolving the local user
  user_id_missing          -- no local user could be resolved
  account_disabled         -- the local user exists but is deactivated
  session_creation_failed  -- session row could not be written
  callback_error           -- anything unexpected (logged with traceback)

The first three happen before any network call. A credential-store failure
does not abort the login: the session is still issued and the redirect goes
to /?notice=reconnect_required so the user can reconnect.

State, PKCE and the authorization-code POST are handled by authlib's
Starlette client (auth/oauth.py). Everything after the token exchange is
blocking I/O (requests, SQLAlchemy) and runs in the threadpool.

Security:
  State and PKCE verifier are single use; every pending authorization is
  dropped from the session by the time the callback returns.
  Both routes are rate limited per IP (OAUTH_RATE_LIMIT).
  Cache-Control: no-store on every redirect [M5].
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from authlib.integrations.base_client import MismatchingStateError, OAuthError
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter, oauth_rate_limit
from auth.credentials import CredentialStore
from auth.models import StoredCredential
from auth.oauth import discard_pending_authorizations, twitter_client
from auth.store import UserStore
from auth.tokens import set_session_cookie
from core import twitter
from core.config import get_settings
from core.models import TokenResponse

logger = logging.getLogger("xreply.api.twitter")

# Auth policy: both routes are public -- they are how a session is obtained.
router = APIRouter()

ERROR_PAGE = "/auth/error"
RECONNECT_NOTICE = "reconnect_required"


def _redirect(url: str) -> RedirectResponse:
    resp = RedirectResponse(url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _error_redirect(code: str) -> RedirectResponse:
    return _redirect(f"{ERROR_PAGE}?{urlencode({'error': code})}")


def _callback_uri(request: Request) -> str:
    """The redirect_uri sent to Twitter: configured override, else this app's callback URL."""
    return get_settings().twitter_redirect_uri or str(request.url_for("twitter_callback"))


# ---------------------------------------------------------------------------
# Initiator
# ---------------------------------------------------------------------------


@limiter.limit(oauth_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.get("/api/auth/twitter", name="twitter_login")
async def twitter_login(request: Request, action: Optional[str] = None):
    """Begin Twitter sign-in.

    Raises TwitterNotConfiguredError (mapped to 503 by api/main.py) before
    anything is stored when the client id or secret is missing.
    """
    if action != "login":
        return JSONResponse(status_code=400, content={"error": "Invalid action"})

    client = twitter_client(request.app.state.oauth)
    redirect_uri = _callback_uri(request)
    logger.info("Starting Twitter authorization (redirect_uri=%s)", redirect_uri)
    resp = await client.authorize_redirect(request, redirect_uri)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Callback
# ---------------------------------------------------------------------------


@limiter.limit(oauth_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.get("/api/auth/twitter/callback", name="twitter_callback")
async def twitter_callback(
    request: Request,
    code: Optional[str] = None,
    error: Optional[str] = None,
) -> RedirectResponse:
    """Complete Twitter sign-in and issue a session cookie."""
    try:
        return await _complete_authorization(request, code, error)
    except Exception:
        logger.exception("Unexpected error in Twitter callback")
        return _error_redirect("callback_error")
    finally:
        # Single use: whatever happened, nothing pending survives this request.
        discard_pending_authorizations(request.session)


async def _complete_authorization(
    request: Request,
    code: Optional[str],
    error: Optional[str],
) -> RedirectResponse:
    if error:
        logger.info("Twitter returned error=%r", error[:100])
        return _error_redirect(error)
    if not code:
        return _error_redirect("no_code")

    client = twitter_client(request.app.state.oauth)
    try:
        raw_token = await client.authorize_access_token(request)
    except MismatchingStateError:
        logger.warning("Twitter callback rejected: missing, expired or mismatched state")
        return _error_redirect("state_mismatch")
    except (OAuthError, httpx.HTTPError, ValueError) as e:
        logger.warning("Twitter token exchange failed: %s", e)
        return _error_redirect("token_exchange_failed")

    token = twitter.parse_token(raw_token)
    if token is None:
        return _error_redirect("token_exchange_failed")
    logger.info("Token exchange succeeded (refresh_token=%s)", bool(token.refresh_token))

    return await run_in_threadpool(_sign_in, request, token)


def _sign_in(request: Request, token: TokenResponse) -> RedirectResponse:
    """Profile fetch, user resolution, credential write and session issue."""
    profile = twitter.fetch_profile(token.access_token)
    if profile is None:
        return _error_redirect("profile_fetch_failed")

    user_store: UserStore = request.app.state.user_store
    credential_store: CredentialStore = request.app.state.credential_store

    try:
        user = user_store.resolve_twitter_user(
            profile.id,
            profile.username,
            display_name=profile.name,
            email=profile.email,
            avatar_url=profile.profile_image_url,
            bio=profile.description,
            verified=profile.verified,
            public_metrics=profile.public_metrics,
        )
    except SQLAlchemyError:
        logger.exception("Could not create or load user for twitter id %s", profile.id)
        return _error_redirect("user_creation_failed")
    if user is None or not user.id:
        logger.error("No local user resolved for twitter id %s", profile.id)
        return _error_redirect("user_id_missing")
    if not user.is_active:
        logger.warning("Sign-in refused for deactivated user %s", user.id)
        return _error_redirect("account_disabled")

    stored = credential_store.store_credentials(
        user.id,
        StoredCredential(
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            twitter_user_id=profile.id,
            twitter_handle=profile.username,
        ),
    )
    if not stored:
        logger.error("Twitter credentials for user %s were not saved; asking user to reconnect", user.id)

    try:
        raw_session = user_store.create_session(user.id)
        user_store.update_last_login(user.id)
    except SQLAlchemyError:
        logger.exception("Could not create session for user %s", user.id)
        return _error_redirect("session_creation_failed")

    logger.info("User %s signed in with Twitter (@%s)", user.id, profile.username)
    target = "/" if stored else f"/?{urlencode({'notice': RECONNECT_NOTICE})}"
    resp = _redirect(target)
    set_session_cookie(resp, raw_session)
    return resp
