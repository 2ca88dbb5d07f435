"""
Identity snapshot normalizer.

Converts the base Firebase Auth fields plus the free-form Firestore profile
document into an IdentitySnapshot, and the snapshot into clean field dicts
that map directly onto Profile columns. No DB or network access here;
callers (fetcher, reconciler) handle I/O.

Profile documents are written by the client apps and are loosely
structured. Only the allow-listed keys below are merged; everything else
is dropped so arbitrary client fields never reach the profiles table:

    document key           snapshot field
    ─────────────────────  ──────────────
    displayName, fullName  display_name
    photoURL, avatarUrl    photo_url
    phoneNumber, phone     phone_number
    username               username

uid, email and emailVerified always come from Firebase Auth.
"""
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from profilesync.identity.session import AuthUser

# Later keys win when a document carries both spellings.
DOCUMENT_FIELD_MAP = (
    ("displayName", "display_name"),
    ("fullName", "display_name"),
    ("photoURL", "photo_url"),
    ("avatarUrl", "photo_url"),
    ("phoneNumber", "phone_number"),
    ("phone", "phone_number"),
    ("username", "username"),
)

USERNAME_MAX_LENGTH = 15

# Snapshot field -> Profile column, for the fields the reconciler diffs.
DIFFED_FIELDS = (
    ("email", "email"),
    ("display_name", "full_name"),
    ("phone_number", "phone"),
    ("photo_url", "avatar_url"),
    ("email_verified", "is_verified"),
)


@dataclass(frozen=True)
class IdentitySnapshot:
    """Merged point-in-time view of a Firebase user. Never persisted."""

    uid: str
    email: str = ""
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    phone_number: Optional[str] = None
    email_verified: bool = False
    creation_time: Optional[datetime] = None
    last_sign_in_time: Optional[datetime] = None
    username: Optional[str] = None
    document_loaded: bool = False
    document_error: Optional[str] = None

    def to_log_dict(self) -> Dict[str, Any]:
        """JSON-safe dict for the sync_logs audit row."""
        return {
            "uid": self.uid,
            "email": self.email,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
            "phoneNumber": self.phone_number,
            "emailVerified": self.email_verified,
            "creationTime": _iso(self.creation_time),
            "lastSignInTime": _iso(self.last_sign_in_time),
            "username": self.username,
            "hasProfileDocument": self.document_loaded,
            "documentError": self.document_error,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _clean(value: Any) -> Optional[str]:
    """Return a stripped non-empty string, or None."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def build_snapshot(
    base: AuthUser,
    document: Optional[Dict[str, Any]] = None,
    *,
    document_error: Optional[str] = None,
) -> IdentitySnapshot:
    """
    Merge allow-listed profile document fields on top of the base auth fields.

    Args:
        base: Firebase Auth fields (session user or admin lookup).
        document: Firestore profile document, or None if missing/unreadable.
        document_error: Why the document could not be read, if it couldn't.

    Returns:
        IdentitySnapshot with document values overriding base values.
    """
    merged: Dict[str, Optional[str]] = {
        "display_name": _clean(base.display_name),
        "photo_url": _clean(base.photo_url),
        "phone_number": _clean(base.phone_number),
        "username": None,
    }
    for doc_key, target in DOCUMENT_FIELD_MAP:
        value = _clean((document or {}).get(doc_key))
        if value is not None:
            merged[target] = value

    return IdentitySnapshot(
        uid=base.uid,
        email=(base.email or "").strip(),
        email_verified=bool(base.email_verified),
        creation_time=base.creation_time,
        last_sign_in_time=base.last_sign_in_time,
        document_loaded=document is not None,
        document_error=document_error,
        **merged,
    )


def identity_fields(snapshot: IdentitySnapshot) -> Dict[str, Any]:
    """
    Profile column dict for the diffed identity fields.

    Fields the snapshot has no data for are omitted, never set to None, so
    a degraded snapshot can't erase previously synced values.
    """
    fields: Dict[str, Any] = {}
    for snap_attr, column in DIFFED_FIELDS:
        value = getattr(snapshot, snap_attr)
        if isinstance(value, bool):
            fields[column] = value
        elif value:
            fields[column] = value
    return fields


def generate_username(snapshot: IdentitySnapshot) -> Optional[str]:
    """Derive a username for a new profile.

    Prefers the document's username, then the display name reduced to
    [a-z0-9], then the email local part.
    """
    if snapshot.username:
        return snapshot.username[:USERNAME_MAX_LENGTH]
    if snapshot.display_name:
        slug = re.sub(r"[^a-z0-9]", "", snapshot.display_name.lower())
        if slug:
            return slug[:USERNAME_MAX_LENGTH]
    if snapshot.email:
        return snapshot.email.split("@")[0][:USERNAME_MAX_LENGTH]
    return None
