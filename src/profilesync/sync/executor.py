"""
SyncExecutor — applies a SyncPlan to the application DB.

Flow for one attempt:
  1. Perform exactly one profile write: INSERT (create) or
     UPDATE ... WHERE firebase_uid = :uid with the plan's explicit columns.
  2. After the write commits, upsert firebase_user_mapping.
  3. Append one sync_logs row (success or error) with the elapsed duration.

Updates never replace the whole row: role, is_active, username and anything
else other features own are left alone.

Create race: if the INSERT hits the firebase_uid unique constraint, another
sync created the row first. The executor re-reads that row, re-plans against
it and applies the resulting update instead of failing.

Write failures are returned as SyncResult(success=False); retrying is the
caller's job.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from profilesync.models.profile import (
    SYNC_STATUS_ERROR,
    FirebaseUserMapping,
    Profile,
    utcnow,
)
from profilesync.models.sync import SyncLog
from profilesync.sync.errors import ExecutorError, MappingUpdateWarning
from profilesync.sync.normalizer import IdentitySnapshot
from profilesync.sync.reconciler import SyncAction, SyncPlan, reconcile

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    success: bool
    action: SyncAction
    profile_id: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int = 0
    changed_fields: List[str] = field(default_factory=list)


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class SyncExecutor:
    """Writes profiles, mappings and audit logs for the sync pipeline."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    def load_profile(self, firebase_uid: str) -> Optional[Profile]:
        """Return the Profile row for firebase_uid, or None."""
        with Session(self.engine) as s:
            return s.exec(
                select(Profile).where(Profile.firebase_uid == firebase_uid)
            ).first()

    def execute(
        self, plan: SyncPlan, snapshot: IdentitySnapshot, started: float
    ) -> SyncResult:
        """
        Apply plan for snapshot.uid.

        Args:
            plan: Output of reconcile().
            snapshot: The snapshot the plan was built from.
            started: time.monotonic() at the start of the attempt.

        Returns:
            SyncResult. Never raises for DB failures.
        """
        try:
            plan, profile_id = self._write(plan, snapshot)
        except ExecutorError as exc:
            logger.error("Profile write failed for %s (%s): %s", snapshot.uid, plan.action.value, exc)
            self._mark_error(snapshot.uid)
            result = SyncResult(
                success=False,
                action=plan.action,
                profile_id=plan.profile_id,
                error=str(exc),
                duration_ms=elapsed_ms(started),
            )
            self._log(snapshot.uid, result, snapshot)
            return result

        self._upsert_mapping(snapshot.uid, profile_id)
        result = SyncResult(
            success=True,
            action=plan.action,
            profile_id=profile_id,
            duration_ms=elapsed_ms(started),
            changed_fields=plan.changed_fields,
        )
        self._log(snapshot.uid, result, snapshot)
        return result

    def record_failure(
        self,
        firebase_uid: str,
        action: SyncAction,
        error: str,
        started: float,
        profile_id: Optional[int] = None,
    ) -> SyncResult:
        """Log an attempt that failed before reaching the write (e.g. fetch)."""
        result = SyncResult(
            success=False,
            action=action,
            profile_id=profile_id,
            error=error,
            duration_ms=elapsed_ms(started),
        )
        self._log(firebase_uid, result, None)
        return result

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _write(self, plan: SyncPlan, snapshot: IdentitySnapshot) -> Tuple[SyncPlan, int]:
        """Perform the profile write. Returns the (possibly re-planned) plan and row id."""
        try:
            if plan.action is SyncAction.CREATE:
                try:
                    return plan, self._insert(plan)
                except IntegrityError:
                    existing = self.load_profile(snapshot.uid)
                    if existing is None:
                        raise
                    logger.warning(
                        "Profile for %s created concurrently, falling back to update",
                        snapshot.uid,
                    )
                    plan = reconcile(snapshot, existing)
            return plan, self._update(snapshot.uid, plan)
        except SQLAlchemyError as exc:
            raise ExecutorError(f"{plan.action.value} failed: {exc}") from exc

    def _insert(self, plan: SyncPlan) -> int:
        with Session(self.engine) as s:
            profile = Profile(**plan.values)
            s.add(profile)
            s.commit()
            s.refresh(profile)
            return profile.id

    def _update(self, firebase_uid: str, plan: SyncPlan) -> int:
        with Session(self.engine) as s:
            result = s.exec(
                update(Profile)
                .where(Profile.firebase_uid == firebase_uid)
                .values(**plan.values)
            )
            updated = result.rowcount
            s.commit()
        if updated == 0:
            raise ExecutorError(f"profile for {firebase_uid} disappeared before update")
        return plan.profile_id

    def _mark_error(self, firebase_uid: str) -> None:
        """Best effort: flag an existing row as sync_status=error."""
        try:
            with Session(self.engine) as s:
                s.exec(
                    update(Profile)
                    .where(Profile.firebase_uid == firebase_uid)
                    .values(sync_status=SYNC_STATUS_ERROR)
                )
                s.commit()
        except SQLAlchemyError as exc:
            logger.warning("Could not mark profile %s as error: %s", firebase_uid, exc)

    def _upsert_mapping(self, firebase_uid: str, profile_id: int) -> None:
        try:
            with Session(self.engine) as s:
                mapping = s.get(FirebaseUserMapping, firebase_uid)
                if mapping is None:
                    mapping = FirebaseUserMapping(firebase_uid=firebase_uid, profile_id=profile_id)
                else:
                    mapping.profile_id = profile_id
                    mapping.updated_at = utcnow()
                s.add(mapping)
                s.commit()
        except SQLAlchemyError as exc:
            logger.warning(
                "%s",
                MappingUpdateWarning(f"Mapping upsert failed for {firebase_uid}: {exc}"),
            )

    def _log(
        self,
        firebase_uid: str,
        result: SyncResult,
        snapshot: Optional[IdentitySnapshot],
    ) -> None:
        data = None
        if snapshot is not None:
            payload = snapshot.to_log_dict()
            payload["changedFields"] = result.changed_fields
            data = json.dumps(payload)

        entry = SyncLog(
            firebase_uid=firebase_uid,
            profile_id=result.profile_id,
            sync_type=result.action.value,
            sync_status="success" if result.success else "error",
            firebase_data_json=data,
            error_message=result.error,
            sync_duration_ms=result.duration_ms,
        )
        try:
            with Session(self.engine) as s:
                s.add(entry)
                s.commit()
        except SQLAlchemyError:
            logger.exception("Failed to write sync log for %s", firebase_uid)
