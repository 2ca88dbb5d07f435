"""
Async wrapper around the firebase_admin SDK.

firebase_admin is synchronous; we run it in a thread pool executor so it
doesn't block the asyncio event loop.

Firestore snapshot listeners deliver their callbacks on a background
thread owned by google-cloud-firestore. watch_profile() hops those back
onto the event loop with call_soon_threadsafe so every trigger callback
runs on the loop thread.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import auth, firestore

from profilesync.identity.session import (
    AuthSession,
    AuthStateCallback,
    AuthUser,
    auth_user_from_record,
)

logger = logging.getLogger(__name__)

ProfileChangeCallback = Callable[[str], None]


class FirebaseClient:
    """
    Thin async wrapper over firebase_admin auth + Firestore.

    Also exposes the process AuthSession so the trigger manager has a
    single Identity Provider object to subscribe to.
    """

    def __init__(
        self,
        app=None,
        session: Optional[AuthSession] = None,
        collection: str = "profiles",
    ):
        """
        Args:
            app: firebase_admin App. Defaults to the default app.
            session: Auth-state stream. A fresh AuthSession if omitted.
            collection: Firestore collection holding profile documents.
        """
        self._app = app
        self.session = session or AuthSession()
        self._collection = collection
        self._db = None

    def _firestore(self):
        if self._db is None:
            self._db = firestore.client(self._app)
        return self._db

    def _profile_ref(self, uid: str):
        return self._firestore().collection(self._collection).document(uid)

    async def _run(self, fn, *args, **kwargs):
        """Run a sync firebase_admin call in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    # ── Auth ──────────────────────────────────────────────────────────────────

    async def get_user(self, uid: str) -> AuthUser:
        """Fetch the Firebase Auth record for uid."""
        record = await self._run(auth.get_user, uid, app=self._app)
        return auth_user_from_record(record)

    async def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """Verify a client ID token and return its decoded claims."""
        return await self._run(auth.verify_id_token, id_token, app=self._app)

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self.session.current_user

    def on_auth_state_changed(self, callback: AuthStateCallback) -> Callable[[], None]:
        return self.session.subscribe(callback)

    # ── Firestore ─────────────────────────────────────────────────────────────

    async def get_profile_document(self, uid: str) -> Optional[Dict[str, Any]]:
        """Return the profile document dict, or None if it doesn't exist."""
        snapshot = await self._run(self._profile_ref(uid).get)
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    async def list_profile_ids(self) -> List[str]:
        """Return the ids of every document in the profiles collection."""

        def _list() -> List[str]:
            return [
                doc.id
                for doc in self._firestore().collection(self._collection).stream()
            ]

        return await self._run(_list)

    def watch_profile(self, uid: str, callback: ProfileChangeCallback) -> Callable[[], None]:
        """
        Listen for changes to profiles/{uid}.

        callback(uid) runs on the event loop each time a snapshot arrives
        for an existing document. Must be called from the loop thread.

        Returns:
            Unsubscribe function (idempotent).
        """
        loop = asyncio.get_running_loop()

        def on_snapshot(docs, changes, read_time) -> None:
            if any(doc.exists for doc in docs):
                loop.call_soon_threadsafe(callback, uid)

        watch = self._profile_ref(uid).on_snapshot(on_snapshot)
        logger.debug("Watching %s/%s", self._collection, uid)
        closed = False

        def unsubscribe() -> None:
            nonlocal closed
            if not closed:
                closed = True
                watch.unsubscribe()

        return unsubscribe
