"""Integration tests for /auth and /sync routes."""
from unittest.mock import AsyncMock

import pytest
from conftest import FakeFirebase, make_user
from fastapi.testclient import TestClient
from firebase_admin import auth, exceptions
from sqlmodel import Session

from profilesync.api.main import create_app
from profilesync.models.profile import SYNC_STATUS_SYNCED, Profile

ALICE = make_user()
ADMIN = make_user("uid-admin", email="admin@example.com", display_name="Admin")


@pytest.fixture(name="firebase")
def firebase_fixture():
    firebase = FakeFirebase()
    firebase.add_user(ALICE, {"displayName": "Alice Smith"})
    firebase.add_token("alice-token", ALICE)
    firebase.add_token("admin-token", ADMIN)
    return firebase


@pytest.fixture(name="client")
def client_fixture(engine, firebase):
    app = create_app(engine=engine, client=firebase)
    with TestClient(app) as c:
        yield c


@pytest.fixture(name="admin_profile")
def admin_profile_fixture(engine):
    with Session(engine) as s:
        s.add(Profile(firebase_uid=ADMIN.uid, email=ADMIN.email, role="admin",
                      sync_status=SYNC_STATUS_SYNCED))
        s.commit()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestSessionRoutes:
    def test_sign_in(self, client, firebase):
        resp = client.post("/auth/session", json={"id_token": "alice-token"})
        assert resp.status_code == 200
        assert resp.json() == {"uid": ALICE.uid, "email": ALICE.email}
        assert firebase.current_user == ALICE

    def test_sign_in_without_auth_record_uses_claims(self, client, firebase):
        resp = client.post("/auth/session", json={"id_token": "admin-token"})
        assert resp.status_code == 200
        assert firebase.current_user.uid == ADMIN.uid
        assert firebase.current_user.creation_time is None

    def test_sign_in_bad_token(self, client, firebase):
        resp = client.post("/auth/session", json={"id_token": "forged"})
        assert resp.status_code == 401
        assert firebase.current_user is None

    def test_sign_in_falls_back_to_claims_when_auth_unavailable(self, client, firebase):
        firebase.get_user = AsyncMock(side_effect=exceptions.UnavailableError("Auth backend unavailable"))
        resp = client.post("/auth/session", json={"id_token": "alice-token"})
        assert resp.status_code == 200
        assert firebase.current_user.uid == ALICE.uid
        assert firebase.current_user.creation_time is None

    def test_sign_out(self, client, firebase):
        client.post("/auth/session", json={"id_token": "alice-token"})
        resp = client.delete("/auth/session", headers=bearer("alice-token"))
        assert resp.status_code == 200
        assert firebase.current_user is None

    def test_sign_out_requires_token(self, client, firebase):
        client.post("/auth/session", json={"id_token": "alice-token"})
        assert client.delete("/auth/session").status_code == 401
        assert firebase.current_user == ALICE

    def test_sign_out_by_other_user_forbidden(self, client, firebase):
        client.post("/auth/session", json={"id_token": "alice-token"})
        resp = client.delete("/auth/session", headers=bearer("admin-token"))
        assert resp.status_code == 403
        assert firebase.current_user == ALICE
        assert client.get("/sync/status").json()["active_listeners"] == 2

    def test_sign_out_without_session(self, client, firebase):
        resp = client.delete("/auth/session", headers=bearer("alice-token"))
        assert resp.status_code == 200
        assert resp.json() == {"message": "No active session"}

    def test_sign_in_attaches_profile_listener(self, client, firebase):
        client.post("/auth/session", json={"id_token": "alice-token"})
        resp = client.get("/sync/status")
        assert resp.json()["active_listeners"] == 2
        assert resp.json()["current_user"] == ALICE.uid


class TestSyncUser:
    def test_requires_token(self, client):
        assert client.post("/sync/user").status_code == 401

    def test_rejects_non_bearer_scheme(self, client):
        resp = client.post("/sync/user", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401

    def test_rejects_invalid_token(self, client):
        assert client.post("/sync/user", headers=bearer("forged")).status_code == 401

    def test_certificate_fetch_failure_is_unavailable(self, client, firebase):
        firebase.verify_id_token = AsyncMock(
            side_effect=auth.CertificateFetchError("Failed to fetch public key certificates", None)
        )
        assert client.post("/sync/user", headers=bearer("alice-token")).status_code == 503

    def test_other_firebase_error_is_unauthorized(self, client, firebase):
        firebase.verify_id_token = AsyncMock(
            side_effect=exceptions.UnavailableError("Token verification failed")
        )
        assert client.post("/sync/user", headers=bearer("alice-token")).status_code == 401

    def test_creates_profile(self, client, engine):
        resp = client.post("/sync/user", headers=bearer("alice-token"))
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["action"] == "create"
        with Session(engine) as s:
            assert s.get(Profile, body["profile_id"]).firebase_uid == ALICE.uid

    def test_second_call_is_timestamp_only(self, client):
        client.post("/sync/user", headers=bearer("alice-token"))
        resp = client.post("/sync/user", headers=bearer("alice-token"))
        assert resp.json()["action"] == "update_timestamp"
        assert resp.json()["changed_fields"] == []

    def test_failure_reported_in_body(self, client):
        # admin has a valid token but no Firebase Auth record
        resp = client.post("/sync/user", headers=bearer("admin-token"))
        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert resp.json()["error"]


class TestForceSync:
    def test_requires_token(self, client):
        assert client.post("/sync/force").status_code == 401

    def test_no_signed_in_user(self, client):
        resp = client.post("/sync/force", headers=bearer("alice-token"))
        assert resp.status_code == 200
        assert resp.json() == {"success": False}

    def test_signed_in_user(self, client):
        client.post("/auth/session", json={"id_token": "alice-token"})
        resp = client.post("/sync/force", headers=bearer("alice-token"))
        assert resp.json() == {"success": True}

    def test_other_user_forbidden(self, client):
        client.post("/auth/session", json={"id_token": "alice-token"})
        resp = client.post("/sync/force", headers=bearer("admin-token"))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Not the signed-in user"


class TestSyncAll:
    def test_requires_token(self, client):
        assert client.post("/sync/all").status_code == 401

    def test_non_admin_forbidden(self, client):
        client.post("/sync/user", headers=bearer("alice-token"))
        assert client.post("/sync/all", headers=bearer("alice-token")).status_code == 403

    def test_admin_runs_sweep(self, client, admin_profile):
        resp = client.post("/sync/all", headers=bearer("admin-token"))
        assert resp.status_code == 200
        assert resp.json()["total"] == 1
        assert resp.json()["success"] == 1

    def test_sweep_in_progress_conflict(self, client, admin_profile):
        client.app.state.sync_service._batch_in_progress = True
        resp = client.post("/sync/all", headers=bearer("admin-token"))
        assert resp.status_code == 409


class TestStatsAndStatus:
    def test_stats_admin_only(self, client):
        assert client.get("/sync/stats", headers=bearer("alice-token")).status_code == 403

    def test_stats(self, client, admin_profile):
        client.post("/sync/user", headers=bearer("alice-token"))
        resp = client.get("/sync/stats", headers=bearer("admin-token"))
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_users"] == 2
        assert body["synced_users"] == 2
        assert body["last_sync"] is not None
        assert [log["firebase_uid"] for log in body["recent_logs"]] == [ALICE.uid]

    def test_status(self, client):
        resp = client.get("/sync/status")
        assert resp.status_code == 200
        body = resp.json()
        assert body["active_listeners"] == 1
        assert body["queue_size"] == 0
        assert body["is_processing"] is False
        assert body["options"]["max_retries"] >= 1
        assert body["current_user"] is None
