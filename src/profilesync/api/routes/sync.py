"""Sync trigger, stats and status routes."""
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from profilesync.api.deps import (
    get_requester,
    get_sync_service,
    get_triggers,
    require_admin,
    require_session_owner,
)
from profilesync.identity.session import AuthUser
from profilesync.models.sync import SyncLog
from profilesync.sync.errors import BatchInProgressError, FetchError
from profilesync.sync.sync_service import ProfileSyncService
from profilesync.triggers.manager import RealtimeSyncTriggers

router = APIRouter()


class SyncResultResponse(BaseModel):
    success: bool
    action: str
    profile_id: Optional[int]
    error: Optional[str]
    duration_ms: int
    changed_fields: List[str]


class ForceSyncResponse(BaseModel):
    success: bool


class BatchSyncResponse(BaseModel):
    success: int
    errors: int
    total: int
    duration_ms: int


class SyncStatsResponse(BaseModel):
    total_users: int
    synced_users: int
    pending_users: int
    error_users: int
    last_sync: Optional[datetime]
    recent_logs: List[SyncLog]


class TriggerStatusResponse(BaseModel):
    active_listeners: int
    queue_size: int
    is_processing: bool
    options: Dict[str, Any]
    current_user: Optional[str]


@router.post("/user", response_model=SyncResultResponse)
async def sync_current_user(
    requester: AuthUser = Depends(get_requester),
    service: ProfileSyncService = Depends(get_sync_service),
):
    """Sync the bearer token's user. Failures come back with success=false."""
    # by uid so the fetch reads the full auth record, not just token claims
    result = await service.sync_user(requester.uid)
    return SyncResultResponse(
        success=result.success,
        action=result.action.value,
        profile_id=result.profile_id,
        error=result.error,
        duration_ms=result.duration_ms,
        changed_fields=result.changed_fields,
    )


@router.post("/force", response_model=ForceSyncResponse)
async def force_sync(
    _owner: AuthUser = Depends(require_session_owner),
    triggers: RealtimeSyncTriggers = Depends(get_triggers),
):
    """Immediately sync the caller, if they are the signed-in user, bypassing debounce and queue."""
    return ForceSyncResponse(success=await triggers.force_sync_current_user())


@router.post("/all", response_model=BatchSyncResponse)
async def sync_all(
    _admin: AuthUser = Depends(require_admin),
    service: ProfileSyncService = Depends(get_sync_service),
):
    """Run a full sweep over every profile document (admin only)."""
    try:
        result = await service.sync_all_users()
    except BatchInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except FetchError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return BatchSyncResponse(
        success=result.success,
        errors=result.errors,
        total=result.total,
        duration_ms=result.duration_ms,
    )


@router.get("/stats", response_model=SyncStatsResponse)
def sync_stats(
    limit: int = 10,
    _admin: AuthUser = Depends(require_admin),
    service: ProfileSyncService = Depends(get_sync_service),
):
    """Profile counts by sync status plus the newest audit entries (admin only)."""
    stats = service.get_sync_stats()
    return SyncStatsResponse(**stats.to_dict(), recent_logs=service.recent_logs(limit))


@router.get("/status", response_model=TriggerStatusResponse)
def sync_status(triggers: RealtimeSyncTriggers = Depends(get_triggers)):
    """Return the trigger manager's listener/queue state."""
    status = triggers.get_status()
    current = triggers.client.current_user
    return TriggerStatusResponse(
        active_listeners=status.active_listeners,
        queue_size=status.queue_size,
        is_processing=status.is_processing,
        options=asdict(status.options),
        current_user=current.uid if current else None,
    )
