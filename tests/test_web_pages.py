"""
tests/test_web_pages.py -- HTML pages: sign-in errors, dashboard, settings form.

Coverage:
  - /auth/error maps known codes through the whitelist and never echoes input
  - dashboard notices (reconnect_required) and the pending reply list
  - dashboard buttons change reply status, only for the owner
  - edits that are empty or over tweet length re-render with an error
  - post links are rendered only for https:// URLs
  - settings form validation and save
  - settings page shows the X profile saved at sign-in
"""

from __future__ import annotations

import pytest

from auth.models import StoredCredential
from conftest import sign_in
from replies.models import REPLY_MAX_LENGTH, ReplySuggestion


def _suggest(stores, user_id: str, text: str = "Love this") -> int:
    return stores.reply_store.create_suggestion(
        ReplySuggestion(user_id=user_id, suggested_reply=text, post_content="hello world", post_author_handle="acme")
    )


class TestAuthErrorPage:
    @pytest.mark.parametrize(
        "code,expected",
        [
            ("access_denied", "You cancelled the authorization on X"),
            ("state_mismatch", "could not be verified"),
            ("token_exchange_failed", "could not complete the sign-in"),
            ("account_disabled", "has been deactivated"),
        ],
    )
    def test_known_codes(self, web_client, code: str, expected: str) -> None:
        client, _ = web_client
        resp = client.get("/auth/error", params={"error": code})
        assert resp.status_code == 200
        assert expected in resp.text

    def test_unknown_code_is_not_reflected(self, web_client) -> None:
        """[M3] A crafted ?error= value must never reach the page."""
        client, _ = web_client
        payload = "<script>alert(1)</script>"
        resp = client.get("/auth/error", params={"error": payload})
        assert resp.status_code == 200
        assert payload not in resp.text
        assert "Sign-in with X failed" in resp.text


class TestDashboard:
    def test_reconnect_notice(self, web_client) -> None:
        client, stores = web_client
        _user, headers = sign_in(stores.user_store, "pg-1", "bea")
        resp = client.get("/", params={"notice": "reconnect_required"}, headers=headers)
        assert "could not be saved" in resp.text

    def test_unknown_notice_is_not_reflected(self, web_client) -> None:
        client, stores = web_client
        _user, headers = sign_in(stores.user_store, "pg-2", "cal")
        resp = client.get("/", params={"notice": "<b>pwned</b>"}, headers=headers)
        assert "<b>pwned</b>" not in resp.text

    def test_lists_open_replies(self, web_client) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-3", "dee")
        _suggest(stores, user.id, "Open suggestion")
        done = _suggest(stores, user.id, "Skipped suggestion")
        stores.reply_store.update_status(done, user.id, "skipped")

        resp = client.get("/", headers=headers)
        assert "Open suggestion" in resp.text
        assert "Skipped suggestion" not in resp.text

    def test_connected_account_hides_reconnect_prompt(self, web_client) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-4", "eve")
        assert "not connected" in client.get("/", headers=headers).text
        stores.credential_store.store_credentials(
            user.id, StoredCredential(access_token="T1", twitter_user_id="pg-4", twitter_handle="eve")
        )
        assert "not connected" not in client.get("/", headers=headers).text

    def test_action_buttons(self, web_client) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-5", "fay")
        reply_id = _suggest(stores, user.id)

        resp = client.post(f"/replies/{reply_id}", data={"action": "edit", "text": "Edited text"}, headers=headers)
        assert resp.status_code == 302
        assert stores.reply_store.get(reply_id, user.id).reply_text == "Edited text"

        client.post(f"/replies/{reply_id}", data={"action": "approve"}, headers=headers)
        assert stores.reply_store.get(reply_id, user.id).status == "approved"

    def test_action_on_terminal_reply_shows_error(self, web_client) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-6", "gus")
        reply_id = _suggest(stores, user.id)
        stores.reply_store.update_status(reply_id, user.id, "posted")
        resp = client.post(f"/replies/{reply_id}", data={"action": "skip"}, headers=headers)
        assert resp.headers["location"] == "/?reply_error=1"

    def test_action_on_other_users_reply_is_ignored(self, web_client) -> None:
        client, stores = web_client
        owner, _ = sign_in(stores.user_store, "pg-7", "hal")
        _intruder, headers = sign_in(stores.user_store, "pg-8", "ivy")
        reply_id = _suggest(stores, owner.id)
        client.post(f"/replies/{reply_id}", data={"action": "skip"}, headers=headers)
        assert stores.reply_store.get(reply_id, owner.id).status == "pending"

    def test_overlong_edit_is_rejected_not_truncated(self, web_client) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-14", "lou")
        reply_id = _suggest(stores, user.id, "Original")

        resp = client.post(
            f"/replies/{reply_id}", data={"action": "edit", "text": "x" * (REPLY_MAX_LENGTH + 1)}, headers=headers
        )
        assert resp.status_code == 400
        assert f"limited to {REPLY_MAX_LENGTH} characters" in resp.text
        assert stores.reply_store.get(reply_id, user.id).reply_text == "Original"

    def test_edit_at_the_limit_is_saved(self, web_client) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-15", "max")
        reply_id = _suggest(stores, user.id)
        text = "y" * REPLY_MAX_LENGTH
        resp = client.post(f"/replies/{reply_id}", data={"action": "edit", "text": text}, headers=headers)
        assert resp.status_code == 302
        assert stores.reply_store.get(reply_id, user.id).reply_text == text

    def test_empty_edit_is_rejected(self, web_client) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-16", "ned")
        reply_id = _suggest(stores, user.id, "Keep me")
        resp = client.post(f"/replies/{reply_id}", data={"action": "edit", "text": "   "}, headers=headers)
        assert resp.status_code == 400
        assert "cannot be empty" in resp.text
        assert stores.reply_store.get(reply_id, user.id).reply_text == "Keep me"

    @pytest.mark.parametrize(
        "n,post_url,linked",
        [
            (1, "https://x.com/acme/status/1", True),
            (2, "HTTPS://x.com/acme/status/2", True),
            (3, "http://x.com/acme/status/3", False),
            (4, "javascript:alert(1)", False),
            (5, "//evil.example/status/4", False),
        ],
    )
    def test_post_link_requires_https(self, web_client, n: int, post_url: str, linked: bool) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, f"pg-link-{n}", "oli")
        stores.reply_store.create_suggestion(
            ReplySuggestion(
                user_id=user.id,
                suggested_reply="Nice",
                post_content="linked post",
                post_author_handle="acme",
                post_url=post_url,
            )
        )
        resp = client.get("/", headers=headers)
        assert "linked post" in resp.text
        assert (f'href="{post_url}"' in resp.text) is linked
        assert ("view post" in resp.text) is linked


class TestSettingsForm:
    def test_form_shows_current_values(self, web_client) -> None:
        client, stores = web_client
        _user, headers = sign_in(stores.user_store, "pg-9", "jo")
        resp = client.get("/settings", headers=headers)
        assert resp.status_code == 200
        assert 'value="09:00"' in resp.text
        assert 'value="UTC"' in resp.text

    def test_save(self, web_client) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-10", "kai")
        resp = client.post(
            "/settings", data={"daily_digest_time": "18:45", "timezone": "Asia/Tokyo"}, headers=headers
        )
        assert resp.status_code == 302
        assert resp.headers["location"] == "/?notice=digest_saved"
        saved = stores.user_store.get_by_id(user.id)
        assert (saved.daily_digest_time, saved.timezone, saved.digest_configured) == ("18:45", "Asia/Tokyo", True)

    @pytest.mark.parametrize(
        "form,message",
        [
            ({"daily_digest_time": "9am", "timezone": "UTC"}, "HH:MM"),
            ({"daily_digest_time": "09:00", "timezone": "Nowhere/Special"}, "Unknown timezone"),
        ],
    )
    def test_invalid_input_rerenders(self, web_client, form: dict, message: str) -> None:
        client, stores = web_client
        user, headers = sign_in(stores.user_store, "pg-11", "lou")
        resp = client.post("/settings", data=form, headers=headers)
        assert resp.status_code == 400
        assert message in resp.text
        assert stores.user_store.get_by_id(user.id).digest_configured is False

    def test_shows_x_profile(self, web_client) -> None:
        client, stores = web_client
        _user, headers = sign_in(stores.user_store, "pg-17", "pia")
        stores.user_store.resolve_twitter_user(
            "pg-17",
            "pia",
            display_name="Pia",
            bio="Writes about compilers.",
            verified=True,
            public_metrics={"followers_count": 42, "following_count": 7, "tweet_count": 1234},
        )
        resp = client.get("/settings", headers=headers)
        assert "Writes about compilers." in resp.text
        assert "verified" in resp.text
        assert "42 followers" in resp.text
        assert "1234 posts" in resp.text
