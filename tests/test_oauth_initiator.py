"""
tests/test_oauth_initiator.py -- GET /api/auth/twitter and the auth.oauth registry.

Coverage:
  - Redirect target and every required authorization parameter
  - PKCE: S256 method, challenge derived from the verifier stored for the callback
  - Fresh state on every call; only the newest authorization stays pending
  - action != login -> 400 {"error": "Invalid action"}
  - Missing client credentials -> 503 twitter_not_configured, no redirect
  - Registered client: Basic client auth at the token endpoint, bounded timeout
"""

from __future__ import annotations

from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import pytest

from auth.oauth import (
    PROVIDER,
    TwitterNotConfiguredError,
    discard_pending_authorizations,
    oauth,
    twitter_client,
)
from core.config import get_settings


def _authorize(client):
    resp = client.get("/api/auth/twitter", params={"action": "login"})
    location = urlparse(resp.headers.get("location", ""))
    return resp, location, {k: v[0] for k, v in parse_qs(location.query).items()}


class TestInitiatorRoute:
    def test_redirects_to_twitter_with_all_parameters(self, oauth_client) -> None:
        client, _ = oauth_client
        resp, location, params = _authorize(client)

        assert resp.status_code == 302
        assert resp.headers["cache-control"] == "no-store"
        assert f"{location.scheme}://{location.netloc}{location.path}" == "https://twitter.com/i/oauth2/authorize"
        assert params["response_type"] == "code"
        assert params["client_id"] == "test-client-id"
        assert params["redirect_uri"] == "http://testserver/api/auth/twitter/callback"
        assert params["scope"] == "tweet.read tweet.write users.read offline.access"
        assert params["code_challenge_method"] == "S256"
        assert params["state"]

    def test_code_challenge_is_s256(self, oauth_client) -> None:
        """BASE64URL(SHA256(verifier)) with no padding is always 43 characters."""
        client, _ = oauth_client
        _, _, params = _authorize(client)
        assert len(params["code_challenge"]) == 43
        assert "=" not in params["code_challenge"]

    def test_state_changes_every_time(self, oauth_client) -> None:
        client, _ = oauth_client
        states = {_authorize(client)[2]["state"] for _ in range(3)}
        assert len(states) == 3

    def test_sets_signed_oauth_session_cookie(self, oauth_client) -> None:
        client, _ = oauth_client
        resp, _, params = _authorize(client)
        cookie = resp.cookies.get("oauth_session")
        assert cookie, "pending authorization must be stored in the session cookie"
        assert params["state"] not in cookie, "session cookie is signed and encoded, not plaintext"

    @pytest.mark.parametrize("query", [{"action": "logout"}, {"action": ""}, {}])
    def test_invalid_action(self, oauth_client, query) -> None:
        client, _ = oauth_client
        resp = client.get("/api/auth/twitter", params=query)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid action"}

    def test_not_configured_is_503(self, oauth_client, monkeypatch) -> None:
        client, _ = oauth_client
        monkeypatch.setattr(get_settings(), "twitter_client_secret", "")
        resp = client.get("/api/auth/twitter", params={"action": "login"})
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "twitter_not_configured"
        assert "location" not in resp.headers
        assert "oauth_session" not in resp.cookies


class TestRegistry:
    def test_client_is_registered_with_pkce_and_basic_auth(self) -> None:
        client = twitter_client(oauth)
        assert client.client_id == "test-client-id"
        assert client.access_token_url == "https://api.twitter.com/2/oauth2/token"
        assert client.client_kwargs["code_challenge_method"] == "S256"
        assert client.client_kwargs["token_endpoint_auth_method"] == "client_secret_basic"
        assert client.client_kwargs["timeout"] == get_settings().twitter_http_timeout

    def test_unregistered_provider_is_not_configured(self) -> None:
        registry = MagicMock()
        registry.create_client.return_value = None
        with pytest.raises(TwitterNotConfiguredError):
            twitter_client(registry)

    def test_missing_secret_is_not_configured(self, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "twitter_client_id", "")
        with pytest.raises(TwitterNotConfiguredError):
            twitter_client(oauth)

    def test_discard_pending_authorizations(self) -> None:
        session = {
            f"_state_{PROVIDER}_abc": {"data": {}, "exp": 0},
            f"_state_{PROVIDER}_def": {"data": {}, "exp": 0},
            "_state_github_xyz": {"data": {}, "exp": 0},
            "unrelated": 1,
        }
        discard_pending_authorizations(session)
        assert session == {"_state_github_xyz": {"data": {}, "exp": 0}, "unrelated": 1}
