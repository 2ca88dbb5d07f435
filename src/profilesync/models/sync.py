"""Sync audit log model."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from profilesync.models.profile import utc_column, utcnow


class SyncLog(SQLModel, table=True):
    """Records each sync attempt for audit and debugging. Never updated."""

    __tablename__ = "sync_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    firebase_uid: str = Field(index=True)
    profile_id: Optional[int] = None
    sync_type: str  # "create", "update", "update_timestamp"
    sync_status: str  # "success", "error"
    firebase_data_json: Optional[str] = None
    error_message: Optional[str] = None
    sync_duration_ms: int = 0
    created_at: datetime = utc_column(default_factory=utcnow, index=True)
