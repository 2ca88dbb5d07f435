"""
RealtimeSyncTriggers — keeps profiles in sync as Firebase state changes.

Construct one instance at startup and pass it to whoever needs it; it owns
all listener, timer and queue state for the process.

Event flow:

    auth-state login ─┐
    profile doc write ┴→ debounce (per uid) → queue (ordered set) → drain → sync_user
                                                                      │
                               failure, attempt < max_retries ←───────┘
                               → retry timer (retry_delay * attempt) → queue

Per-user states: idle → queued → in_progress → idle, or
in_progress → retry_scheduled → queued → ... until max_retries attempts
have failed, after which the failure is logged and the user goes idle.

Everything runs on the event loop thread; the only suspension points are
the Firebase and DB calls inside sync_user(). A single drain task processes
the queue one uid at a time, and a uid leaves the queue before its pipeline
starts, so one user never has two queued syncs in flight.

cleanup() unsubscribes listeners, cancels every debounce/retry timer, stops
the batch scheduler and empties the queue. A pipeline call already running
finishes; nothing new starts until initialize() is called again.
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from profilesync.config import Settings, get_settings
from profilesync.identity.session import AuthUser
from profilesync.models.profile import utcnow
from profilesync.scheduler.jobs import build_scheduler
from profilesync.sync.errors import AuthenticationLostError
from profilesync.sync.stats import SyncStats

logger = logging.getLogger(__name__)

AUTH_LISTENER_ID = "auth-state-listener"
BATCH_LISTENER_ID = "batch-sync-timer"


class UserSyncState(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    RETRY_SCHEDULED = "retry_scheduled"


@dataclass(frozen=True)
class RealtimeSyncOptions:
    """Trigger configuration. Delays and intervals are in seconds."""

    enable_auth_sync: bool = True
    enable_profile_sync: bool = True
    enable_batch_sync: bool = False
    batch_sync_interval: float = 300.0
    max_retries: int = 3
    retry_delay: float = 2.0
    debounce_delay: float = 1.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RealtimeSyncOptions":
        s = settings or get_settings()
        return cls(
            enable_auth_sync=s.enable_auth_sync,
            enable_profile_sync=s.enable_profile_sync,
            enable_batch_sync=s.enable_batch_sync,
            batch_sync_interval=s.batch_sync_interval,
            max_retries=s.max_retries,
            retry_delay=s.retry_delay,
            debounce_delay=s.debounce_delay,
        )


@dataclass(frozen=True)
class ActiveListener:
    id: str
    type: str  # "auth", "profile", "batch"
    unsubscribe: Callable[[], None]
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TriggerStatus:
    active_listeners: int
    queue_size: int
    is_processing: bool
    options: RealtimeSyncOptions


class RealtimeSyncTriggers:
    """Listener lifecycle, debounce, single-flight queue drain and retry."""

    def __init__(self, client, service, options: Optional[RealtimeSyncOptions] = None):
        """
        Args:
            client: FirebaseClient (auth-state stream, profile listeners, current user).
            service: ProfileSyncService running the sync pipeline.
            options: Initial options. Defaults to RealtimeSyncOptions().
        """
        self.client = client
        self.service = service
        self.options = options or RealtimeSyncOptions()
        self.last_stats: Optional[SyncStats] = None

        self._listeners: Dict[str, ActiveListener] = {}
        self._debounce_timers: Dict[str, asyncio.TimerHandle] = {}
        self._retry_timers: Dict[str, asyncio.TimerHandle] = {}
        # uid -> attempt number; dict keeps insertion order and set semantics
        self._queue: Dict[str, int] = {}
        self._in_progress: Optional[str] = None
        self._is_processing = False
        self._drain_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._active = False

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def initialize(self, options: Optional[RealtimeSyncOptions] = None, **overrides) -> None:
        """
        (Re)start all enabled triggers. Must be called from the event loop.

        Args:
            options: Full option set to use. Defaults to the current options.
            **overrides: Individual option fields to change, e.g. debounce_delay=0.5.
        """
        self.cleanup()
        self.options = replace(options or self.options, **overrides)
        self._loop = asyncio.get_running_loop()
        self._active = True

        if self.options.enable_auth_sync:
            self._setup_auth_state_listener()
        if self.options.enable_batch_sync:
            self._setup_batch_sync_timer()

        logger.info("Realtime sync triggers initialised: %s", self.options)

    def cleanup(self) -> None:
        """Tear down every listener, timer and queued uid. Safe to call at any time."""
        self._active = False

        for listener in list(self._listeners.values()):
            try:
                listener.unsubscribe()
            except Exception:
                logger.exception("Failed to unsubscribe listener %s", listener.id)
        self._listeners.clear()

        for timer in list(self._debounce_timers.values()) + list(self._retry_timers.values()):
            timer.cancel()
        self._debounce_timers.clear()
        self._retry_timers.clear()
        self._queue.clear()

        logger.debug("Realtime sync triggers cleaned up")

    def update_options(self, **changes) -> None:
        """Change options in place; the batch timer is rebuilt if its settings changed."""
        old = self.options
        self.options = replace(old, **changes)
        logger.info("Realtime sync options updated: %s -> %s", old, self.options)

        batch_changed = (
            old.enable_batch_sync != self.options.enable_batch_sync
            or old.batch_sync_interval != self.options.batch_sync_interval
        )
        if not self._active or not batch_changed:
            return
        self._remove_listener(BATCH_LISTENER_ID)
        if self.options.enable_batch_sync:
            self._setup_batch_sync_timer()

    # ── Public entry points ───────────────────────────────────────────────────

    async def force_sync_current_user(self) -> bool:
        """Sync the signed-in user now, bypassing debounce and queue."""
        user = self.client.current_user
        if user is None:
            logger.warning("Force sync requested with no authenticated user")
            return False

        logger.info("Force sync for %s", user.uid)
        try:
            result = await self.service.sync_user(user)
        except Exception:
            logger.exception("Force sync failed for %s", user.uid)
            return False
        return result.success

    def get_status(self) -> TriggerStatus:
        return TriggerStatus(
            active_listeners=len(self._listeners),
            queue_size=len(self._queue),
            is_processing=self._is_processing,
            options=self.options,
        )

    def get_user_state(self, uid: str) -> UserSyncState:
        if self._in_progress == uid:
            return UserSyncState.IN_PROGRESS
        if uid in self._queue or uid in self._debounce_timers:
            return UserSyncState.QUEUED
        if uid in self._retry_timers:
            return UserSyncState.RETRY_SCHEDULED
        return UserSyncState.IDLE

    # ── Listeners ─────────────────────────────────────────────────────────────

    def _setup_auth_state_listener(self) -> None:
        unsubscribe = self.client.on_auth_state_changed(self._on_auth_state_changed)
        self._listeners[AUTH_LISTENER_ID] = ActiveListener(
            id=AUTH_LISTENER_ID, type="auth", unsubscribe=unsubscribe, created_at=utcnow()
        )
        # Match Firebase semantics: subscribers learn the current state immediately.
        if self.client.current_user is not None:
            self._on_auth_state_changed(self.client.current_user)

    def _on_auth_state_changed(self, user: Optional[AuthUser]) -> None:
        if not self._active:
            return
        if user is None:
            logger.info("Auth state: logout")
            self._remove_profile_listeners()
            return

        logger.info("Auth state: login %s", user.uid)
        self._schedule_sync(user.uid)
        if self.options.enable_profile_sync:
            self._setup_profile_listener(user.uid)

    def _setup_profile_listener(self, uid: str) -> None:
        self._remove_profile_listeners()
        listener_id = f"profile-listener-{uid}"
        try:
            unsubscribe = self.client.watch_profile(uid, self._on_profile_changed)
        except Exception:
            logger.exception("Could not attach profile listener for %s", uid)
            return
        self._listeners[listener_id] = ActiveListener(
            id=listener_id,
            type="profile",
            unsubscribe=unsubscribe,
            user_id=uid,
            created_at=utcnow(),
        )
        logger.debug("Profile listener attached for %s", uid)

    def _on_profile_changed(self, uid: str) -> None:
        if not self._active or f"profile-listener-{uid}" not in self._listeners:
            return
        logger.info("Profile document changed for %s", uid)
        self._schedule_sync(uid)

    def _remove_profile_listeners(self) -> None:
        for listener_id, listener in list(self._listeners.items()):
            if listener.type == "profile":
                self._remove_listener(listener_id)

    def _remove_listener(self, listener_id: str) -> None:
        listener = self._listeners.pop(listener_id, None)
        if listener is None:
            return
        try:
            listener.unsubscribe()
        except Exception:
            logger.exception("Failed to unsubscribe listener %s", listener_id)

    def _setup_batch_sync_timer(self) -> None:
        scheduler = build_scheduler(
            self.service,
            interval_seconds=self.options.batch_sync_interval,
            event_loop=self._loop,
        )
        scheduler.start()

        def stop() -> None:
            if scheduler.running:
                scheduler.shutdown(wait=False)

        self._listeners[BATCH_LISTENER_ID] = ActiveListener(
            id=BATCH_LISTENER_ID, type="batch", unsubscribe=stop, created_at=utcnow()
        )
        logger.info("Batch sync every %.0fs", self.options.batch_sync_interval)

    # ── Debounce, queue, retry ────────────────────────────────────────────────

    def _schedule_sync(self, uid: str) -> None:
        """(Re)arm the debounce timer for uid."""
        timer = self._debounce_timers.pop(uid, None)
        if timer is not None:
            timer.cancel()
        self._debounce_timers[uid] = self._loop.call_later(
            self.options.debounce_delay, self._on_debounce_fired, uid
        )

    def _on_debounce_fired(self, uid: str) -> None:
        self._debounce_timers.pop(uid, None)
        if not self._active:
            return
        # A fresh change event supersedes any pending retry and resets the count.
        retry = self._retry_timers.pop(uid, None)
        if retry is not None:
            retry.cancel()
        self._enqueue(uid, attempt=1)

    def _on_retry_fired(self, uid: str, attempt: int) -> None:
        self._retry_timers.pop(uid, None)
        if not self._active:
            return
        self._enqueue(uid, attempt=attempt)

    def _enqueue(self, uid: str, attempt: int) -> None:
        if uid not in self._queue or attempt == 1:
            self._queue[uid] = attempt
        if not self._is_processing:
            self._is_processing = True
            self._drain_task = self._loop.create_task(self._process_queue())

    async def _process_queue(self) -> None:
        processed = 0
        try:
            while self._queue and self._active:
                uid = next(iter(self._queue))
                attempt = self._queue.pop(uid)
                await self._sync_with_retry(uid, attempt)
                processed += 1
            if processed and self._active:
                self._refresh_stats()
        finally:
            self._is_processing = False
            self._drain_task = None

    async def _sync_with_retry(self, uid: str, attempt: int) -> None:
        user = self.client.current_user
        if user is None or user.uid != uid:
            logger.warning(
                "%s",
                AuthenticationLostError(f"{uid} is no longer authenticated, sync abandoned"),
            )
            return

        self._in_progress = uid
        try:
            result = await self.service.sync_user(user)
            error = result.error
            succeeded = result.success
        except Exception as exc:
            logger.exception("Sync pipeline raised for %s", uid)
            error = str(exc)
            succeeded = False
        finally:
            self._in_progress = None

        if succeeded:
            logger.info("Queued sync complete for %s: %s", uid, result.action.value)
            return

        logger.error("Sync attempt %d/%d failed for %s: %s", attempt, self.options.max_retries, uid, error)
        if not self._active or uid in self._queue:
            # cleaned up, or a newer change event already re-queued this user
            return
        if attempt >= self.options.max_retries:
            logger.error("Giving up on %s after %d attempts", uid, attempt)
            return

        delay = self.options.retry_delay * attempt
        logger.info("Retrying %s in %.1fs", uid, delay)
        self._retry_timers[uid] = self._loop.call_later(
            delay, self._on_retry_fired, uid, attempt + 1
        )

    def _refresh_stats(self) -> None:
        try:
            self.last_stats = self.service.get_sync_stats()
        except Exception:
            logger.exception("Could not refresh sync stats")
