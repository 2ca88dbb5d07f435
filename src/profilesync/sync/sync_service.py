"""
ProfileSyncService — orchestrates Firebase → application DB sync.

Flow for a single user (sync_user):
  1. ProfileFetcher builds a fresh IdentitySnapshot (auth record + profile doc)
  2. Load the existing Profile row (if any)
  3. reconcile() decides create / update / update_timestamp
  4. SyncExecutor performs the write, upserts the mapping, logs the attempt

Every attempt produces exactly one sync_logs row and a SyncResult, whether it
succeeds or fails; pipeline failures are returned, not raised.

sync_all_users() runs the same pipeline over every profile document in
Firestore, one user at a time. Only one sweep may run at once; a second
request raises BatchInProgressError.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from profilesync.models.profile import utcnow
from profilesync.models.sync import SyncLog
from profilesync.sync.errors import BatchInProgressError, FetchError
from profilesync.sync.executor import SyncExecutor, SyncResult
from profilesync.sync.fetcher import ProfileFetcher, UserHandle, handle_uid
from profilesync.sync.reconciler import SyncAction, reconcile
from profilesync.sync.stats import SyncStats, get_sync_stats, recent_sync_logs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchSyncResult:
    success: int
    errors: int
    total: int
    duration_ms: int = 0


class ProfileSyncService:
    """Fetcher → Reconciler → Executor pipeline for one or more users."""

    def __init__(self, client, engine):
        """
        Args:
            client: FirebaseClient instance (or AsyncMock in tests).
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.client = client
        self.engine = engine
        self.fetcher = ProfileFetcher(client)
        self.executor = SyncExecutor(engine)
        self._batch_in_progress = False
        self.last_batch_at: Optional[datetime] = None

    @property
    def is_batch_in_progress(self) -> bool:
        return self._batch_in_progress

    async def sync_user(self, handle: UserHandle) -> SyncResult:
        """
        Sync one Firebase user into the profiles table.

        Args:
            handle: Session AuthUser or bare Firebase uid.

        Returns:
            SyncResult describing the attempt.
        """
        started = time.monotonic()
        uid = handle_uid(handle) if handle else ""
        logger.info("Sync starting for %s", uid or "<none>")

        try:
            snapshot = await self.fetcher.fetch(handle)
            existing = self.executor.load_profile(snapshot.uid)
        except (FetchError, SQLAlchemyError) as exc:
            return self._fetch_failed(uid, exc, started)

        plan = reconcile(snapshot, existing)
        result = self.executor.execute(plan, snapshot, started)

        if result.success:
            logger.info(
                "Sync complete for %s: %s (profile=%s, %d ms)",
                uid, result.action.value, result.profile_id, result.duration_ms,
            )
        else:
            logger.error("Sync failed for %s: %s", uid, result.error)
        return result

    async def sync_all_users(self) -> BatchSyncResult:
        """
        Sync every user that has a Firestore profile document, sequentially.

        Individual failures are counted, not retried.

        Raises:
            BatchInProgressError: if another sweep is running.
            FetchError: if the profile collection can't be enumerated.
        """
        if self._batch_in_progress:
            raise BatchInProgressError("Batch sync already in progress")

        self._batch_in_progress = True
        self.last_batch_at = utcnow()
        started = time.monotonic()
        success = errors = total = 0
        try:
            try:
                uids = await self.client.list_profile_ids()
            except Exception as exc:
                raise FetchError(f"Could not enumerate profile documents: {exc}") from exc

            total = len(uids)
            logger.info("Batch sync starting for %d users", total)
            for uid in uids:
                result = await self.sync_user(uid)
                if result.success:
                    success += 1
                else:
                    errors += 1
        finally:
            self._batch_in_progress = False

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Batch sync finished: %d/%d synced, %d errors (%d ms)",
            success, total, errors, duration_ms,
        )
        return BatchSyncResult(success=success, errors=errors, total=total, duration_ms=duration_ms)

    def get_sync_stats(self) -> SyncStats:
        return get_sync_stats(self.engine)

    def recent_logs(self, limit: int = 10) -> List[SyncLog]:
        return recent_sync_logs(self.engine, limit)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _fetch_failed(self, uid: str, exc: Exception, started: float) -> SyncResult:
        logger.error("Sync failed for %s before write: %s", uid or "<none>", exc)
        existing = None
        try:
            existing = self.executor.load_profile(uid) if uid else None
        except SQLAlchemyError:
            logger.warning("Could not read existing profile for %s", uid)
        action = SyncAction.UPDATE if existing else SyncAction.CREATE
        return self.executor.record_failure(
            uid,
            action,
            str(exc),
            started,
            profile_id=existing.id if existing else None,
        )
