"""Sync stats reporter: aggregates over profiles for observability surfaces."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from profilesync.models.profile import (
    SYNC_STATUS_ERROR,
    SYNC_STATUS_PENDING,
    SYNC_STATUS_SYNCED,
    Profile,
)
from profilesync.models.sync import SyncLog


@dataclass(frozen=True)
class SyncStats:
    total_users: int = 0
    synced_users: int = 0
    pending_users: int = 0
    error_users: int = 0
    last_sync: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_sync_stats(engine) -> SyncStats:
    """Count profiles by sync_status and find the most recent last_sync_at. Read-only."""
    with Session(engine) as s:
        rows = s.exec(
            select(Profile.sync_status, func.count()).group_by(Profile.sync_status)
        ).all()
        last_sync = s.exec(select(func.max(Profile.last_sync_at))).one()

    by_status = {status: count for status, count in rows}
    return SyncStats(
        total_users=sum(by_status.values()),
        synced_users=by_status.get(SYNC_STATUS_SYNCED, 0),
        pending_users=by_status.get(SYNC_STATUS_PENDING, 0),
        error_users=by_status.get(SYNC_STATUS_ERROR, 0),
        last_sync=last_sync,
    )


def recent_sync_logs(engine, limit: int = 10) -> List[SyncLog]:
    """Return the newest audit entries, most recent first."""
    with Session(engine) as s:
        return list(
            s.exec(
                select(SyncLog)
                .order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
                .limit(limit)
            ).all()
        )
