"""Shared test fixtures."""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest
from firebase_admin import auth
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from profilesync.identity.session import AuthSession, AuthUser
from profilesync.models.profile import FirebaseUserMapping, Profile  # noqa: F401
from profilesync.models.sync import SyncLog  # noqa: F401


def make_user(uid: str = "uid-alice", **overrides) -> AuthUser:
    """AuthUser with realistic defaults."""
    fields = dict(
        uid=uid,
        email="alice@example.com",
        display_name="Alice Smith",
        photo_url=None,
        phone_number=None,
        email_verified=True,
        creation_time=datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc),
        last_sign_in_time=datetime(2025, 1, 15, 7, 30, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return AuthUser(**fields)


class FakeFirebase:
    """
    In-memory stand-in for FirebaseClient.

    users: uid -> AuthUser (the Firebase Auth records)
    documents: uid -> dict (the Firestore profiles collection)
    tokens: ID token -> decoded claims
    """

    def __init__(self):
        self.session = AuthSession()
        self.users: Dict[str, AuthUser] = {}
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self.document_error: Optional[Exception] = None
        self.watchers: Dict[str, List[Callable[[str], None]]] = {}

    def add_user(self, user: AuthUser, document: Optional[Dict[str, Any]] = None) -> AuthUser:
        self.users[user.uid] = user
        if document is not None:
            self.documents[user.uid] = document
        return user

    def add_token(self, token: str, user: AuthUser) -> None:
        self.tokens[token] = {
            "uid": user.uid,
            "email": user.email,
            "name": user.display_name,
            "email_verified": user.email_verified,
            "auth_time": 1736926200,
        }

    async def get_user(self, uid: str) -> AuthUser:
        if uid not in self.users:
            raise auth.UserNotFoundError(f"No user record found for the provided user ID: {uid}")
        return self.users[uid]

    async def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        if id_token not in self.tokens:
            raise auth.InvalidIdTokenError("Could not verify token signature")
        return self.tokens[id_token]

    async def get_profile_document(self, uid: str) -> Optional[Dict[str, Any]]:
        if self.document_error is not None:
            raise self.document_error
        return self.documents.get(uid)

    async def list_profile_ids(self) -> List[str]:
        return list(self.documents)

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self.session.current_user

    def on_auth_state_changed(self, callback):
        return self.session.subscribe(callback)

    def watch_profile(self, uid: str, callback: Callable[[str], None]):
        self.watchers.setdefault(uid, []).append(callback)

        def unsubscribe() -> None:
            if callback in self.watchers.get(uid, []):
                self.watchers[uid].remove(callback)

        return unsubscribe

    def change_document(self, uid: str, **fields) -> None:
        """Write to profiles/{uid} and notify listeners, as on_snapshot would."""
        self.documents.setdefault(uid, {}).update(fields)
        for callback in list(self.watchers.get(uid, [])):
            callback(uid)


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="firebase")
def firebase_fixture() -> FakeFirebase:
    return FakeFirebase()


@pytest.fixture(name="alice")
def alice_fixture() -> AuthUser:
    return make_user()
