"""
auth/oauth.py -- Authlib OAuth registry for Twitter (X) sign-in.

Twitter uses the OAuth 2.0 authorization code flow with PKCE. authlib's
Starlette client owns the whole browser round trip:
  authorize_redirect()      -- generates state and the PKCE verifier, stores
                               both (plus the redirect URI) in the signed
                               session cookie, 302s to the consent screen
  authorize_access_token()  -- checks the returned state against the session
                               (MismatchingStateError), clears it, and POSTs
                               the code + verifier to the token endpoint with
                               HTTP Basic client authentication

The pending entry lives in the SessionMiddleware cookie (itsdangerous), whose
max_age is Settings.oauth_state_ttl_seconds, so an abandoned authorization
expires with the cookie.

The provider is registered at import time only when client credentials are
configured; twitter_client() raises TwitterNotConfiguredError otherwise.

Layer rule: no imports from api/, web/, or replies/. Import from core/ is
allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import get_settings
from core.twitter import AUTHORIZE_URL, TOKEN_URL

logger = logging.getLogger("xreply.auth.oauth")

PROVIDER = "twitter"

# Session keys authlib's StarletteIntegration uses for pending state data.
_STATE_KEY_PREFIX = f"_state_{PROVIDER}_"


class TwitterNotConfiguredError(RuntimeError):
    """TWITTER_CLIENT_ID or TWITTER_CLIENT_SECRET is missing."""


# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

if _cfg.twitter_configured:
    oauth.register(
        name=PROVIDER,
        client_id=_cfg.twitter_client_id,
        client_secret=_cfg.twitter_client_secret,
        authorize_url=AUTHORIZE_URL,
        access_token_url=TOKEN_URL,  # noqa: S106 -- URL, not a password
        client_kwargs={
            "scope": _cfg.twitter_scopes,
            "code_challenge_method": "S256",
            "token_endpoint_auth_method": "client_secret_basic",
            "timeout": _cfg.twitter_http_timeout,
        },
    )
    logger.info("Twitter OAuth provider registered")


def twitter_client(registry: OAuth):
    """Return the registered Twitter client.

    Raises:
        TwitterNotConfiguredError: client id or secret is not configured, or
            was not configured when the registry was built.
    """
    client = registry.create_client(PROVIDER)
    if client is None or not get_settings().twitter_configured:
        raise TwitterNotConfiguredError("TWITTER_CLIENT_ID and TWITTER_CLIENT_SECRET must be set.")
    return client


def discard_pending_authorizations(session: dict) -> None:
    """Drop every pending Twitter authorization from the session.

    authlib clears the entry it matched; this covers callbacks that end
    before the token exchange or carry a state that matched nothing.
    """
    for key in [k for k in session if k.startswith(_STATE_KEY_PREFIX)]:
        session.pop(key, None)
