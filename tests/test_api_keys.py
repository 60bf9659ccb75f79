# =============================================================================
# API Tests — Key Management (/keys)
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from keygate.db.models import UserRole
from keygate.services import audit


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@pytest.fixture
def alice(make_account):
    return make_account("alice@keygate.dev")


def _create(client, headers, **body):
    body.setdefault("name", "ci-runner")
    return client.post("/keys", json=body, headers=headers)


class TestCreateKey:
    def test_create_returns_raw_key_once(self, client, alice, auth_headers, clock):
        response = _create(client, auth_headers(alice))

        assert response.status_code == 201
        body = response.json()
        assert body["raw_key"].startswith("sk_")
        assert body["key_prefix"] == body["raw_key"][:10]
        assert body["status"] == "active"
        assert body["total_hits"] == 0
        assert "key_hash" not in body

        # Never again: not in the listing, not in the detail view
        listing = client.get("/keys", headers=auth_headers(alice)).text
        detail = client.get(f"/keys/{body['id']}", headers=auth_headers(alice)).text
        assert body["raw_key"] not in listing
        assert body["raw_key"] not in detail

    def test_created_key_works_on_gated_api(self, client, alice, auth_headers):
        raw_key = _create(client, auth_headers(alice)).json()["raw_key"]

        response = client.get("/api/v1/resource", headers={"X-API-KEY": raw_key})

        assert response.status_code == 200
        assert response.json()["user_id"] == alice.id

    def test_default_expiry_30_days(self, client, alice, auth_headers):
        body = _create(client, auth_headers(alice)).json()
        assert body["expires_at"].startswith("2026-01-31")

    @pytest.mark.parametrize("days", [0, -3, "30", 1.5, 3651, 10_000_000])
    def test_bad_expiry_is_422(self, client, alice, auth_headers, days):
        response = _create(client, auth_headers(alice), expires_in_days=days)
        assert response.status_code == 422

    @pytest.mark.parametrize("name", ["", "x" * 101])
    def test_bad_name_is_422(self, client, alice, auth_headers, name):
        response = _create(client, auth_headers(alice), name=name)
        assert response.status_code == 422

    def test_creation_is_audited(self, client, alice, auth_headers, audit_recorder):
        body = _create(client, auth_headers(alice)).json()

        [entry] = audit_recorder.entries
        assert entry.action == audit.API_KEY_CREATED
        assert entry.actor_id == alice.id
        assert entry.target_id == body["id"]

    def test_requires_session(self, client):
        response = client.post("/keys", json={"name": "k"})
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    def test_api_key_is_not_a_session(self, client, alice, auth_headers):
        raw_key = _create(client, auth_headers(alice)).json()["raw_key"]
        response = client.post(
            "/keys", json={"name": "k"}, headers={"Authorization": f"Bearer {raw_key}"},
        )
        assert response.status_code == 401


class TestListAndGet:
    def test_list_own_keys_newest_first(
        self, client, alice, make_account, auth_headers, clock,
    ):
        bob = make_account("bob@keygate.dev")
        for name in ("first", "second", "third"):
            _create(client, auth_headers(alice), name=name)
            clock.advance(minutes=1)
        _create(client, auth_headers(bob), name="bobs")

        body = client.get("/keys?limit=2", headers=auth_headers(alice)).json()

        assert [k["name"] for k in body["keys"]] == ["third", "second"]
        assert body["total"] == 3
        assert body["limit"] == 2
        assert body["offset"] == 0

    def test_get_other_users_key_is_404(
        self, client, alice, make_account, auth_headers,
    ):
        bob = make_account("bob@keygate.dev")
        key_id = _create(client, auth_headers(bob)).json()["id"]

        response = client.get(f"/keys/{key_id}", headers=auth_headers(alice))

        assert response.status_code == 404

    def test_get_reflects_usage(self, client, alice, auth_headers):
        created = _create(client, auth_headers(alice)).json()
        client.get("/api/v1/resource", headers={"X-API-KEY": created["raw_key"]})

        body = client.get(f"/keys/{created['id']}", headers=auth_headers(alice)).json()

        assert body["total_hits"] == 1
        assert body["last_used_at"] is not None


class TestRevoke:
    def test_revoke_denies_further_use(self, client, alice, auth_headers):
        created = _create(client, auth_headers(alice)).json()

        response = client.post(
            f"/keys/{created['id']}/revoke", headers=auth_headers(alice),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "revoked"
        gated = client.get("/api/v1/resource", headers={"X-API-KEY": created["raw_key"]})
        assert gated.status_code == 401
        assert gated.json() == {"error": "API Key Revoked"}

    def test_revoke_twice_is_noop(self, client, alice, auth_headers, audit_recorder):
        key_id = _create(client, auth_headers(alice)).json()["id"]

        first = client.post(f"/keys/{key_id}/revoke", headers=auth_headers(alice))
        second = client.post(f"/keys/{key_id}/revoke", headers=auth_headers(alice))

        assert first.json() == second.json()
        assert second.json()["status"] == "revoked"
        revocations = [
            e for e in audit_recorder.entries if e.action == audit.API_KEY_REVOKED
        ]
        assert len(revocations) == 1

    def test_cannot_revoke_someone_elses_key(
        self, client, alice, make_account, auth_headers, key_store,
    ):
        bob = make_account("bob@keygate.dev")
        key_id = _create(client, auth_headers(bob)).json()["id"]

        response = client.post(f"/keys/{key_id}/revoke", headers=auth_headers(alice))

        assert response.status_code == 404
        assert _run(key_store.get(key_id)).is_active


class TestDelete:
    def test_admin_deletes_any_key(
        self, client, alice, make_account, auth_headers, key_store, audit_recorder,
    ):
        admin = make_account("root@keygate.dev", role=UserRole.ADMIN)
        created = _create(client, auth_headers(alice)).json()

        response = client.delete(f"/keys/{created['id']}", headers=auth_headers(admin))

        assert response.status_code == 204
        assert _run(key_store.get(created["id"])) is None
        assert audit_recorder.entries[-1].action == audit.API_KEY_DELETED
        gated = client.get("/api/v1/resource", headers={"X-API-KEY": created["raw_key"]})
        assert gated.json() == {"error": "Invalid API Key"}

    def test_owner_cannot_delete(self, client, alice, auth_headers):
        key_id = _create(client, auth_headers(alice)).json()["id"]

        response = client.delete(f"/keys/{key_id}", headers=auth_headers(alice))

        assert response.status_code == 403
        assert response.json() == {"error": "Admin access required"}

    def test_delete_unknown_is_404(self, client, make_account, auth_headers):
        admin = make_account("root@keygate.dev", role=UserRole.ADMIN)
        response = client.delete("/keys/999", headers=auth_headers(admin))
        assert response.status_code == 404
