"""
core/twitter.py -- Twitter (X) endpoints and the direct API calls.

The authorization-code grant goes through authlib's Starlette client
(auth/oauth.py). This module makes the two calls that happen outside the
browser round trip, each a single request with a bounded timeout:
  refresh_access_token() -- refresh_token grant at the token endpoint
  fetch_profile()        -- GET /2/users/me for the authenticated identity

parse_token() turns any token endpoint payload, from either path, into a
TokenResponse.

Neither call retries and neither raises on network or protocol failure:
they log a warning and return None. The caller owns the decision of which
error code the user sees. Token values are never logged.
"""

import logging
from typing import Any, Optional

import requests

from core.config import get_settings
from core.models import TokenResponse, TwitterProfile

logger = logging.getLogger("xreply.twitter")

AUTHORIZE_URL = "https://twitter.com/i/oauth2/authorize"
TOKEN_URL = "https://api.twitter.com/2/oauth2/token"  # noqa: S105 -- URL, not a password
USERS_ME_URL = "https://api.twitter.com/2/users/me"

PROFILE_FIELDS = "id,name,username,email,profile_image_url,public_metrics,verified,description"

# Module-level session shared across all calls for connection pooling.
# max_redirects=3 replaces the requests default of 30 -- these are known
# public endpoints and a long redirect chain is never legitimate here.
_session = requests.Session()
_session.max_redirects = 3


def _client_auth() -> tuple[str, str]:
    """HTTP Basic client credentials for the token endpoint."""
    cfg = get_settings()
    return cfg.twitter_client_id, cfg.twitter_client_secret


def parse_token(data: Any) -> Optional[TokenResponse]:
    """Turn a decoded token endpoint body into a TokenResponse, or None.

    A body that is not a JSON object or has no access_token is a failure.
    """
    if not isinstance(data, dict) or not data.get("access_token"):
        logger.warning("Token endpoint response has no access_token")
        return None
    expires_in = data.get("expires_in")
    return TokenResponse(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token") or "",
        token_type=data.get("token_type") or "bearer",
        expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
        scope=data.get("scope") or "",
    )


def _parse_token_response(resp: requests.Response) -> Optional[TokenResponse]:
    if not resp.ok:
        # The error body is the provider's JSON error description, no secrets.
        logger.warning("Token endpoint returned HTTP %d: %s", resp.status_code, resp.text[:300])
        return None
    try:
        data = resp.json()
    except ValueError:
        logger.warning("Token endpoint returned a non-JSON body")
        return None
    return parse_token(data)


def refresh_access_token(refresh_token: str) -> Optional[TokenResponse]:
    """Trade a refresh token for a new access/refresh pair.

    Twitter rotates refresh tokens: the old one stops working once this call
    succeeds, so the caller must persist the returned pair immediately.
    """
    if not refresh_token:
        return None
    cfg = get_settings()
    body = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": cfg.twitter_client_id,
    }
    try:
        resp = _session.post(
            TOKEN_URL,
            data=body,
            auth=_client_auth(),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=cfg.twitter_http_timeout,
        )
    except requests.RequestException as e:
        logger.warning("Token refresh request failed: %s", e)
        return None
    return _parse_token_response(resp)


def fetch_profile(access_token: str) -> Optional[TwitterProfile]:
    """Fetch the authenticated user's profile with the given access token."""
    if not access_token:
        return None
    cfg = get_settings()
    try:
        resp = _session.get(
            USERS_ME_URL,
            params={"user.fields": PROFILE_FIELDS},
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=cfg.twitter_http_timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
    except requests.RequestException as e:
        logger.warning("Profile fetch failed: %s", e)
        return None
    except ValueError:
        logger.warning("Profile endpoint returned a non-JSON body")
        return None

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict) or not data.get("id"):
        logger.warning("Profile response has no data.id")
        return None

    metrics = data.get("public_metrics")
    if not isinstance(metrics, dict):
        metrics = {}
    return TwitterProfile(
        id=str(data["id"]),
        username=data.get("username") or "",
        name=data.get("name") or "",
        email=data.get("email") or None,
        profile_image_url=data.get("profile_image_url") or None,
        verified=bool(data.get("verified", False)),
        description=data.get("description") or "",
        public_metrics={k: int(v) for k, v in metrics.items() if isinstance(v, (int, float))},
    )
