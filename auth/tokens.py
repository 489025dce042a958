"""
auth/tokens.py -- Session token and session cookie utilities.

Security design decisions:
  Session tokens: secrets.token_urlsafe(32) gives 256 bits of entropy. The
       browser holds the raw token in an httpOnly cookie; the database holds
       only HMAC-SHA256(SECRET_KEY, raw_token). Lookup is O(1) by hash, and a
       copy of the sessions table cannot be replayed without SECRET_KEY.

  Cookies: httponly, samesite=lax, secure when SECURE_COOKIES=true. max_age
       matches the server-side expiry so both expire together.

Layer rule: no imports from api/, web/, or replies/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from core.config import get_settings

SESSION_COOKIE = "session_id"


def generate_session_token() -> str:
    """Return a new opaque session token for the browser cookie."""
    return secrets.token_urlsafe(32)


def hash_session_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string.

    Deterministic, so the store can look sessions up by primary key.
    """
    return hmac.new(
        get_settings().secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


def set_session_cookie(response, raw_token: str, expire_seconds: int = 0) -> None:
    """Write the session token as an httpOnly cookie on the response.

    Args:
        response:       FastAPI/Starlette response object.
        raw_token:      Token from generate_session_token().
        expire_seconds: Cookie max_age. If 0 (default), uses
                        Settings.session_expire_seconds.
    """
    cfg = get_settings()
    duration = expire_seconds if expire_seconds > 0 else cfg.session_expire_seconds
    response.set_cookie(
        SESSION_COOKIE,
        value=raw_token,
        httponly=True,
        samesite="lax",
        secure=cfg.secure_cookies,
        max_age=duration,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
