"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

There is exactly one authentication mechanism: the opaque session cookie.
It is resolved once per request by load_session_user(), which the session
middleware in api/main.py calls before any route runs. Everything else reads
the result from request.state.user.

try_get_current_user() is the soft variant (returns None when anonymous).
get_current_user() wraps it and raises HTTP 401.

Layer rule: no imports from web/, core/, or replies/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.tokens import SESSION_COOKIE

_UNRESOLVED = object()


def load_session_user(request: Request) -> User | None:
    """Resolve the session cookie against the store and cache it on request.state.

    Reads through to the database every time it is called; there is no
    process-wide session cache.
    """
    raw_token = request.cookies.get(SESSION_COOKIE, "")
    user = request.app.state.user_store.get_session_user(raw_token) if raw_token else None
    request.state.user = user
    return user


def try_get_current_user(request: Request) -> User | None:
    """Return the user the session middleware resolved, or None.

    Falls back to resolving the cookie directly when the middleware did not
    run (e.g. a route invoked outside the full ASGI stack).
    """
    user = getattr(request.state, "user", _UNRESOLVED)
    if user is _UNRESOLVED:
        return load_session_user(request)
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is anonymous.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
