"""
tests/conftest.py -- Shared test fixtures for X Reply Manager integration tests.

This module provides:
  - make_stores(): isolated in-memory DBs for users, credentials, replies, targets
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - sign_in(): creates a user + session and returns the Cookie header for it
  - api_client / web_client: module-scoped TestClients
  - oauth_client: function-scoped TestClient with fresh stores, for the
    OAuth flow where every test needs an empty database and cookie jar

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any api/auth/core import:
  DEBUG           -- get_settings() auto-generates SECRET_KEY instead of raising
  ALLOWED_HOSTS   -- TestClient sends Host: testserver
  TWITTER_*       -- the OAuth initiator refuses to run without client creds
  OAUTH_RATE_LIMIT -- one in-memory limiter is shared by the whole session
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')
os.environ.setdefault("TWITTER_CLIENT_ID", "test-client-id")
os.environ.setdefault("TWITTER_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("OAUTH_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.credentials import CredentialStore
from auth.models import User
from auth.oauth import oauth
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE
from replies.store import ReplyStore
from targets.store import TargetStore

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_stores(db_suffix: str) -> SimpleNamespace:
    """Create the four stores on one named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'web').
    """
    db_url = f"sqlite:///file:test_xreply_{db_suffix}?mode=memory&cache=shared&uri=true"
    return SimpleNamespace(
        user_store=UserStore(db_url=db_url),
        credential_store=CredentialStore(db_url=db_url),
        reply_store=ReplyStore(db_url=db_url),
        target_store=TargetStore(db_url=db_url),
    )


def close_stores(stores: SimpleNamespace) -> None:
    stores.target_store.close()
    stores.reply_store.close()
    stores.credential_store.close()
    stores.user_store.close()


def _patch_lifespan(stores: SimpleNamespace):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the configured database, and the real
    authlib registry (tests patch its token call, never its state handling).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = stores.user_store
        app.state.credential_store = stores.credential_store
        app.state.reply_store = stores.reply_store
        app.state.target_store = stores.target_store
        app.state.oauth = oauth
        yield

    return test_lifespan


def sign_in(user_store: UserStore, twitter_user_id: str, handle: str) -> tuple[User, dict[str, str]]:
    """Create (or reuse) a user, open a session, and return (user, headers).

    The session is sent as an explicit Cookie header rather than stored in
    the client's jar, so one module-scoped client can act as several users.
    """
    user = user_store.resolve_twitter_user(twitter_user_id, handle, display_name=handle.title())
    raw_token = user_store.create_session(user.id)
    return user, {"Cookie": f"{SESSION_COOKIE}={raw_token}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, SimpleNamespace], None, None]:
    """Yield (client, stores) for JSON API integration tests."""
    stores = make_stores(f"api_{uuid.uuid4().hex[:8]}")
    app.router.lifespan_context = _patch_lifespan(stores)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, stores

    close_stores(stores)


@pytest.fixture(scope="module")
def web_client() -> Generator[tuple[TestClient, SimpleNamespace], None, None]:
    """Yield (client, stores) for web route integration tests.

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations* (e.g. 302 to /login), which are invisible once
    the client follows the redirect and returns the final 200 response.
    """
    stores = make_stores(f"web_{uuid.uuid4().hex[:8]}")
    app.router.lifespan_context = _patch_lifespan(stores)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, stores

    close_stores(stores)


@pytest.fixture
def oauth_client() -> Generator[tuple[TestClient, SimpleNamespace], None, None]:
    """Yield (client, stores) with an empty database and an empty cookie jar.

    The jar carries the signed OAuth session cookie from the initiator to the
    callback, exactly as a browser would.
    """
    stores = make_stores(f"oauth_{uuid.uuid4().hex[:8]}")
    app.router.lifespan_context = _patch_lifespan(stores)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, stores

    close_stores(stores)
