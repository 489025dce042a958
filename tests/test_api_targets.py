"""
tests/test_api_targets.py -- Integration tests for /api/v1/targets.

Coverage:
  - create returns 201 with normalized keywords and hashtags
  - a target without a name or without any keyword/hashtag is 400 invalid_target
  - listing returns only the caller's targets, filterable by status
  - partial update through PUT; null fields are left unchanged
  - another user's target is a 404 on read, update and delete (IDOR guard)
  - delete is 204 and the target is gone afterwards
"""

from __future__ import annotations

import pytest

from conftest import sign_in


def _create(client, headers, **body) -> dict:
    body.setdefault("name", "Indie hackers")
    body.setdefault("keywords", ["bootstrapped"])
    resp = client.post("/api/v1/targets", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestCreate:
    def test_create(self, api_client) -> None:
        client, stores = api_client
        user, headers = sign_in(stores.user_store, "tg-1", "ada")
        body = _create(client, headers, keywords=[" saas ", "saas"], hashtags=["buildinpublic"], min_engagement=10)

        assert body["name"] == "Indie hackers"
        assert body["keywords"] == ["saas"]
        assert body["hashtags"] == ["#buildinpublic"]
        assert body["min_engagement"] == 10
        assert body["status"] == "active"
        assert body["target_type"] == "topic"
        assert stores.target_store.get(body["id"], user.id) is not None

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "  ", "keywords": ["saas"]},
            {"name": "No terms", "keywords": [], "hashtags": []},
            {"name": "Blank terms", "keywords": ["  "], "hashtags": ["#"]},
        ],
    )
    def test_invalid_target_is_400(self, api_client, payload: dict) -> None:
        client, stores = api_client
        _user, headers = sign_in(stores.user_store, "tg-2", "ben")
        resp = client.post("/api/v1/targets", json=payload, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_target"

    def test_negative_engagement_is_422(self, api_client) -> None:
        client, stores = api_client
        _user, headers = sign_in(stores.user_store, "tg-3", "cid")
        resp = client.post(
            "/api/v1/targets", json={"name": "x", "keywords": ["y"], "min_engagement": -1}, headers=headers
        )
        assert resp.status_code == 422

    def test_requires_session(self, api_client) -> None:
        client, _ = api_client
        assert client.post("/api/v1/targets", json={"name": "x", "keywords": ["y"]}).status_code == 401
        assert client.get("/api/v1/targets").status_code == 401


class TestListing:
    def test_lists_only_own_targets(self, api_client) -> None:
        client, stores = api_client
        _owner, headers = sign_in(stores.user_store, "tg-4", "dot")
        _other, other_headers = sign_in(stores.user_store, "tg-5", "eli")
        mine = _create(client, headers)
        _create(client, other_headers)

        body = client.get("/api/v1/targets", headers=headers).json()
        assert [t["id"] for t in body] == [mine["id"]]

    def test_status_filter(self, api_client) -> None:
        client, stores = api_client
        _user, headers = sign_in(stores.user_store, "tg-6", "fin")
        active = _create(client, headers, name="Active")
        paused = _create(client, headers, name="Paused")
        client.put(f"/api/v1/targets/{paused['id']}", json={"status": "paused"}, headers=headers)

        listed = client.get("/api/v1/targets", params={"status": "active"}, headers=headers).json()
        assert [t["id"] for t in listed] == [active["id"]]

    def test_invalid_status_filter(self, api_client) -> None:
        client, stores = api_client
        _user, headers = sign_in(stores.user_store, "tg-7", "gia")
        resp = client.get("/api/v1/targets", params={"status": "deleted"}, headers=headers)
        assert resp.status_code == 422


class TestUpdate:
    def test_partial_update(self, api_client) -> None:
        client, stores = api_client
        _user, headers = sign_in(stores.user_store, "tg-8", "hal")
        created = _create(client, headers, hashtags=["ai"])

        resp = client.put(
            f"/api/v1/targets/{created['id']}",
            json={"name": "Renamed", "keywords": None, "exclude_keywords": ["crypto"]},
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Renamed"
        assert body["keywords"] == ["bootstrapped"]
        assert body["hashtags"] == ["#ai"]
        assert body["exclude_keywords"] == ["crypto"]

    def test_update_that_empties_terms_is_400(self, api_client) -> None:
        client, stores = api_client
        user, headers = sign_in(stores.user_store, "tg-9", "ivo")
        created = _create(client, headers)
        resp = client.put(f"/api/v1/targets/{created['id']}", json={"keywords": []}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_target"
        assert stores.target_store.get(created["id"], user.id).keywords == ["bootstrapped"]

    def test_missing_target_is_404(self, api_client) -> None:
        client, stores = api_client
        _user, headers = sign_in(stores.user_store, "tg-10", "jan")
        resp = client.put("/api/v1/targets/999999", json={"name": "x"}, headers=headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestOwnership:
    def test_other_users_target_is_404_everywhere(self, api_client) -> None:
        client, stores = api_client
        owner, owner_headers = sign_in(stores.user_store, "tg-11", "kim")
        _intruder, headers = sign_in(stores.user_store, "tg-12", "lev")
        target_id = _create(client, owner_headers, name="Private")["id"]

        assert client.get(f"/api/v1/targets/{target_id}", headers=headers).status_code == 404
        assert client.put(f"/api/v1/targets/{target_id}", json={"name": "Mine now"}, headers=headers).status_code == 404
        assert client.delete(f"/api/v1/targets/{target_id}", headers=headers).status_code == 404

        target = stores.target_store.get(target_id, owner.id)
        assert target is not None
        assert target.name == "Private"


class TestDelete:
    def test_delete(self, api_client) -> None:
        client, stores = api_client
        _user, headers = sign_in(stores.user_store, "tg-13", "mo")
        target_id = _create(client, headers)["id"]

        resp = client.delete(f"/api/v1/targets/{target_id}", headers=headers)
        assert resp.status_code == 204
        assert client.get(f"/api/v1/targets/{target_id}", headers=headers).status_code == 404
        assert client.delete(f"/api/v1/targets/{target_id}", headers=headers).status_code == 404
