"""
web/routes.py -- Jinja2 template routes for the X Reply Manager dashboard.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user, credential and reply stores) but return HTML instead of
JSON. Twitter sign-in itself is handled by api/routes/twitter.py; the login
page only links to it.

Routes:
  GET  /                    -- pending reply suggestions (auth required)
  POST /replies/{reply_id}  -- approve / skip / post / edit from the dashboard
  GET  /settings            -- digest schedule form (auth required)
  POST /settings            -- save digest schedule
  GET  /login               -- "Sign in with X" page
  POST /logout              -- delete session, clear cookie, redirect /login
  GET  /auth/error          -- sign-in failure page for /auth/error?error=<code>
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.credentials import CredentialStore
from auth.dependencies import try_get_current_user
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE, clear_session_cookie
from core.digest import is_valid_digest_time, validate_timezone
from replies.models import REPLY_MAX_LENGTH
from replies.store import InvalidTransitionError, ReplyStore

logger = logging.getLogger("xreply.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose try_get_current_user as a Jinja2 global so layout.html can render the
# signed-in user without every handler passing it in the context.
templates.env.globals["try_get_current_user"] = try_get_current_user
router = APIRouter()

LOGIN_URL = "/api/auth/twitter?action=login"

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for /auth/error?error= codes [M3].
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Unknown codes (including arbitrary provider values) get the
# generic message.
_ERROR_MESSAGES: dict[str, str] = {
    "access_denied": "You cancelled the authorization on X. No account was connected.",
    "no_code": "X did not return an authorization code. Please try again.",
    "state_mismatch": "Your sign-in request expired or could not be verified. Please start again.",
    "token_exchange_failed": "We could not complete the sign-in with X. Please try again.",
    "profile_fetch_failed": "We could not read your X profile. Please try again.",
    "user_creation_failed": "We could not create your account. Please try again later.",
    "user_id_missing": "We could not find or create your account. Please try again later.",
    "account_disabled": "Your account has been deactivated. Contact support to restore access.",
    "session_creation_failed": "We could not start your session. Please try again.",
    "callback_error": "Something went wrong while signing you in. Please try again.",
}
_GENERIC_ERROR = "Sign-in with X failed. Please try again."

# Whitelist for ?notice= on the dashboard, same rule as above.
_NOTICE_MESSAGES: dict[str, str] = {
    "reconnect_required": "You are signed in, but your X account could not be saved. Please reconnect it.",
    "digest_saved": "Digest schedule saved.",
}

_DASHBOARD_ACTIONS: dict[str, str] = {
    "approve": "approved",
    "skip": "skipped",
    "post": "posted",
}

# Suggestions still awaiting a final decision; the dashboard shows only these.
_OPEN_STATUSES = ("pending", "edited", "approved")
_REPLY_ERROR = "That reply can no longer be changed."
_EDIT_TOO_LONG = f"Replies are limited to {REPLY_MAX_LENGTH} characters. Your edit was not saved."
_EDIT_EMPTY = "A reply cannot be empty. Your edit was not saved."


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths. [C2]

    Rejects absolute URLs and protocol-relative "//host" URLs, both of which
    would send the browser off-site.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/"


def _require_auth(request: Request) -> Optional[RedirectResponse]:
    """Return a redirect to /login if the request is anonymous, else None.

    Call at the top of protected route handlers:
        if redirect := _require_auth(request):
            return redirect
    """
    user = try_get_current_user(request)
    if user is None:
        path = request.url.path
        return RedirectResponse(f"/login?next={path}", status_code=302)
    return None


def _redirect(url: str) -> RedirectResponse:
    resp = RedirectResponse(url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _is_https_url(url: Optional[str]) -> bool:
    return bool(url) and url.lower().startswith("https://")


# ---------------------------------------------------------------------------
# GET / -- pending replies
# ---------------------------------------------------------------------------


def _render_dashboard(request: Request, user, error_msg: Optional[str] = None, status_code: int = 200) -> HTMLResponse:
    reply_store: ReplyStore = request.app.state.reply_store
    credential_store: CredentialStore = request.app.state.credential_store
    replies = [r for r in reply_store.list_for_user(user.id) if r.status in _OPEN_STATUSES]
    return templates.TemplateResponse(
        "home.html",
        {
            "request": request,
            "replies": replies,
            # Post links come from stored data; anything but https:// is dropped.
            "post_links": {r.id: r.post_url for r in replies if _is_https_url(r.post_url)},
            "twitter_connected": credential_store.has_valid_credentials(user.id),
            "notice_msg": _NOTICE_MESSAGES.get(request.query_params.get("notice", "")),
            "error_msg": error_msg,
            "login_url": LOGIN_URL,
            "digest_configured": user.digest_configured,
            "reply_max_length": REPLY_MAX_LENGTH,
        },
        status_code=status_code,
    )


@router.get("/", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect

    user = try_get_current_user(request)
    error_msg = _REPLY_ERROR if request.query_params.get("reply_error") == "1" else None
    return _render_dashboard(request, user, error_msg)


@router.post("/replies/{reply_id}", response_class=HTMLResponse)
def reply_action(
    request: Request,
    reply_id: int,
    action: str = Form(...),
    text: str = Form(""),
) -> HTMLResponse:
    """Apply a dashboard button to one reply and return to the dashboard.

    Unknown actions and replies the user does not own are both a silent
    redirect back; the store's ownership check makes them no-ops. An edit
    that is empty or over tweet length re-renders the dashboard with an
    error and changes nothing.
    """
    if redirect := _require_auth(request):
        return redirect

    user = try_get_current_user(request)
    reply_store: ReplyStore = request.app.state.reply_store
    try:
        if action == "edit":
            text = text.strip()
            if not text:
                return _render_dashboard(request, user, _EDIT_EMPTY, status_code=400)
            if len(text) > REPLY_MAX_LENGTH:
                return _render_dashboard(request, user, _EDIT_TOO_LONG, status_code=400)
            reply_store.edit_reply(reply_id, user.id, text)
        elif action in _DASHBOARD_ACTIONS:
            reply_store.update_status(reply_id, user.id, _DASHBOARD_ACTIONS[action])
        else:
            logger.warning("Unknown dashboard action %r for reply %s", action[:20], reply_id)
    except InvalidTransitionError:
        return _redirect("/?reply_error=1")
    return _redirect("/")


# ---------------------------------------------------------------------------
# Settings -- digest schedule
# ---------------------------------------------------------------------------


@router.get("/settings", response_class=HTMLResponse)
def settings_form(request: Request) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    user = try_get_current_user(request)
    return templates.TemplateResponse(
        "settings.html",
        {
            "request": request,
            "daily_digest_time": user.daily_digest_time,
            "timezone": user.timezone,
        },
    )


@router.post("/settings", response_class=HTMLResponse)
def settings_post(
    request: Request,
    daily_digest_time: str = Form(...),
    timezone: str = Form(...),
) -> HTMLResponse:
    """Validate and save the digest schedule; re-render the form on error."""
    if redirect := _require_auth(request):
        return redirect

    user = try_get_current_user(request)
    daily_digest_time = daily_digest_time.strip()
    timezone = timezone.strip()

    error_msg = None
    if not is_valid_digest_time(daily_digest_time):
        error_msg = "Digest time must be HH:MM in 24-hour format."
    else:
        try:
            validate_timezone(timezone)
        except ValueError:
            error_msg = "Unknown timezone. Use an IANA name such as Europe/Berlin."
    if error_msg:
        return templates.TemplateResponse(
            "settings.html",
            {
                "request": request,
                "daily_digest_time": daily_digest_time,
                "timezone": timezone,
                "error_msg": error_msg,
            },
            status_code=400,
        )

    user_store: UserStore = request.app.state.user_store
    user_store.update_digest_preferences(user.id, daily_digest_time, timezone)
    return _redirect("/?notice=digest_saved")


# ---------------------------------------------------------------------------
# Auth pages -- login, logout, error
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the sign-in page. Already signed-in users go straight to ?next or /."""
    if try_get_current_user(request) is not None:
        return RedirectResponse(_safe_next(request.query_params.get("next")), status_code=302)
    return templates.TemplateResponse(
        "login.html",
        {"request": request, "login_url": LOGIN_URL},
    )


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Delete the session row, clear the cookie and redirect to the login page."""
    raw_token = request.cookies.get(SESSION_COOKIE, "")
    if raw_token:
        user_store: UserStore = request.app.state.user_store
        user_store.delete_session(raw_token)
    resp = _redirect("/login")
    clear_session_cookie(resp)
    return resp


@router.get("/auth/error", response_class=HTMLResponse)
def auth_error(request: Request) -> HTMLResponse:
    """Explain a failed sign-in. The ?error= value is only used as a dict key [M3]."""
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""), _GENERIC_ERROR)
    return templates.TemplateResponse(
        "auth_error.html",
        {"request": request, "error_msg": error_msg, "login_url": LOGIN_URL},
    )
