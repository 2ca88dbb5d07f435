"""Application profile models: the system-of-record row and the uid mapping."""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

SYNC_STATUS_SYNCED = "synced"
SYNC_STATUS_PENDING = "pending"
SYNC_STATUS_ERROR = "error"


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def utc_column(**kwargs):
    """Field for a datetime column; values are stored as UTC."""
    return Field(sa_type=DateTime(timezone=True), **kwargs)


class Profile(SQLModel, table=True):
    """
    One row per Firebase user.

    Identity columns are written only by the sync engine. role and is_active
    belong to other application features and are set once on create.
    """

    __tablename__ = "profiles"

    id: Optional[int] = Field(default=None, primary_key=True)
    firebase_uid: str = Field(unique=True, index=True)

    # Identity fields (mirrored from Firebase)
    email: str = ""
    full_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    is_verified: bool = False
    firebase_created_at: Optional[datetime] = utc_column(default=None)
    firebase_last_sign_in: Optional[datetime] = utc_column(default=None)

    # Application-owned fields
    username: Optional[str] = None
    role: str = "user"
    is_active: bool = True

    # Sync bookkeeping
    last_sync_at: Optional[datetime] = utc_column(default=None)
    sync_status: str = SYNC_STATUS_PENDING  # "synced", "pending", "error"

    created_at: datetime = utc_column(default_factory=utcnow)
    updated_at: datetime = utc_column(default_factory=utcnow)


class FirebaseUserMapping(SQLModel, table=True):
    """Firebase uid -> profiles.id lookup, upserted after every successful write."""

    __tablename__ = "firebase_user_mapping"

    firebase_uid: str = Field(primary_key=True)
    profile_id: int = Field(index=True)
    created_at: datetime = utc_column(default_factory=utcnow)
    updated_at: datetime = utc_column(default_factory=utcnow)
