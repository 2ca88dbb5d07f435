"""Tests for the create / update / update_timestamp decision."""
from datetime import datetime, timezone

from profilesync.models.profile import SYNC_STATUS_ERROR, SYNC_STATUS_SYNCED, Profile
from profilesync.sync.normalizer import IdentitySnapshot
from profilesync.sync.reconciler import SyncAction, diff_fields, reconcile

NOW = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)
SIGN_IN = datetime(2025, 1, 31, 8, 0, tzinfo=timezone.utc)


def _snapshot(**overrides) -> IdentitySnapshot:
    fields = dict(
        uid="uid-1",
        email="bob@example.com",
        display_name="Bob",
        email_verified=True,
        creation_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        last_sign_in_time=SIGN_IN,
    )
    fields.update(overrides)
    return IdentitySnapshot(**fields)


def _profile(**overrides) -> Profile:
    fields = dict(
        id=7,
        firebase_uid="uid-1",
        email="bob@example.com",
        full_name="Bob",
        is_verified=True,
        username="bob",
        role="admin",
        sync_status=SYNC_STATUS_SYNCED,
    )
    fields.update(overrides)
    return Profile(**fields)


class TestCreate:
    def test_no_row_means_create(self):
        plan = reconcile(_snapshot(), None, now=NOW)
        assert plan.action is SyncAction.CREATE
        assert plan.profile_id is None

    def test_create_values(self):
        plan = reconcile(_snapshot(), None, now=NOW)
        v = plan.values
        assert v["firebase_uid"] == "uid-1"
        assert v["email"] == "bob@example.com"
        assert v["full_name"] == "Bob"
        assert v["is_verified"] is True
        assert v["username"] == "bob"
        assert v["sync_status"] == SYNC_STATUS_SYNCED
        assert v["last_sync_at"] == NOW
        assert v["firebase_created_at"] == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert v["firebase_last_sign_in"] == SIGN_IN

    def test_create_leaves_app_owned_defaults(self):
        plan = reconcile(_snapshot(), None, now=NOW)
        assert "role" not in plan.values
        assert "is_active" not in plan.values


class TestUpdate:
    def test_changed_name_means_update(self):
        plan = reconcile(_snapshot(display_name="Robert"), _profile(), now=NOW)
        assert plan.action is SyncAction.UPDATE
        assert plan.changed_fields == ["full_name"]
        assert plan.values["full_name"] == "Robert"
        assert plan.values["sync_status"] == SYNC_STATUS_SYNCED
        assert plan.profile_id == 7

    def test_update_never_touches_app_owned_columns(self):
        plan = reconcile(_snapshot(display_name="Robert"), _profile(), now=NOW)
        for column in ("role", "is_active", "username", "firebase_uid", "created_at"):
            assert column not in plan.values

    def test_error_row_gets_full_update(self):
        plan = reconcile(_snapshot(), _profile(sync_status=SYNC_STATUS_ERROR), now=NOW)
        assert plan.action is SyncAction.UPDATE
        assert plan.changed_fields == ["sync_status"]

    def test_missing_snapshot_value_does_not_clear_column(self):
        existing = _profile(phone="+15550000000")
        plan = reconcile(_snapshot(phone_number=None, display_name="Robert"), existing, now=NOW)
        assert "phone" not in plan.values

    def test_verification_flip_detected(self):
        plan = reconcile(_snapshot(email_verified=False), _profile(), now=NOW)
        assert plan.action is SyncAction.UPDATE
        assert plan.values["is_verified"] is False


class TestUpdateTimestamp:
    def test_unchanged_means_timestamp_only(self):
        plan = reconcile(_snapshot(), _profile(), now=NOW)
        assert plan.action is SyncAction.UPDATE_TIMESTAMP
        assert plan.values == {"last_sync_at": NOW, "firebase_last_sign_in": SIGN_IN}
        assert plan.changed_fields == []

    def test_no_sign_in_time(self):
        plan = reconcile(_snapshot(last_sign_in_time=None), _profile(), now=NOW)
        assert plan.values == {"last_sync_at": NOW}


class TestDiffFields:
    def test_lists_differing_columns(self):
        changed = diff_fields(
            _snapshot(email="new@example.com", photo_url="https://cdn/p.png"), _profile()
        )
        assert sorted(changed) == ["avatar_url", "email"]
