"""
Profile reconciler — decides what a sync attempt must write.

Given a fresh IdentitySnapshot and the current Profile row (or None):

  no row                      → CREATE            (all identity fields, username, synced)
  row, diffed fields changed  → UPDATE            (identity fields + sync_status=synced)
  row, nothing changed        → UPDATE_TIMESTAMP  (last_sync_at + firebase_last_sign_in only)

The two-tier update is what makes sync idempotent: a repeated sync of an
unchanged snapshot bumps timestamps and nothing else. A row not currently
in "synced" state (e.g. left in "error") always gets a full UPDATE so it
recovers.

Pure functions; no DB access.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from profilesync.models.profile import SYNC_STATUS_SYNCED, Profile, utcnow
from profilesync.sync.normalizer import (
    IdentitySnapshot,
    generate_username,
    identity_fields,
)


class SyncAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    UPDATE_TIMESTAMP = "update_timestamp"


@dataclass
class SyncPlan:
    """The single write a sync attempt will perform."""

    action: SyncAction
    values: Dict[str, Any]
    changed_fields: List[str] = field(default_factory=list)
    profile_id: Optional[int] = None


def diff_fields(snapshot: IdentitySnapshot, existing: Profile) -> List[str]:
    """Return the Profile columns whose stored value differs from the snapshot."""
    return [
        column
        for column, value in identity_fields(snapshot).items()
        if getattr(existing, column) != value
    ]


def reconcile(
    snapshot: IdentitySnapshot,
    existing: Optional[Profile],
    now: Optional[datetime] = None,
) -> SyncPlan:
    """
    Classify the required action and build the column values to write.

    Args:
        snapshot: Freshly fetched identity snapshot.
        existing: Current Profile row for snapshot.uid, or None.
        now: Timestamp for last_sync_at/updated_at (defaults to now, UTC).

    Returns:
        SyncPlan whose values contain only the columns that action writes.
    """
    now = now or utcnow()

    if existing is None:
        values = identity_fields(snapshot)
        values.update(
            firebase_uid=snapshot.uid,
            username=generate_username(snapshot),
            firebase_created_at=snapshot.creation_time,
            firebase_last_sign_in=snapshot.last_sign_in_time,
            last_sync_at=now,
            sync_status=SYNC_STATUS_SYNCED,
            created_at=now,
            updated_at=now,
        )
        return SyncPlan(action=SyncAction.CREATE, values=values, changed_fields=sorted(values))

    changed = diff_fields(snapshot, existing)
    if existing.sync_status != SYNC_STATUS_SYNCED:
        changed.append("sync_status")

    if not changed:
        values: Dict[str, Any] = {"last_sync_at": now}
        if snapshot.last_sign_in_time is not None:
            values["firebase_last_sign_in"] = snapshot.last_sign_in_time
        return SyncPlan(
            action=SyncAction.UPDATE_TIMESTAMP,
            values=values,
            profile_id=existing.id,
        )

    values = identity_fields(snapshot)
    if snapshot.creation_time is not None:
        values["firebase_created_at"] = snapshot.creation_time
    if snapshot.last_sign_in_time is not None:
        values["firebase_last_sign_in"] = snapshot.last_sign_in_time
    values.update(last_sync_at=now, sync_status=SYNC_STATUS_SYNCED, updated_at=now)
    return SyncPlan(
        action=SyncAction.UPDATE,
        values=values,
        changed_fields=changed,
        profile_id=existing.id,
    )
