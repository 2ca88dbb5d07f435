"""
Auth-state stream for the Identity Provider.

Firebase Admin has no server-side onAuthStateChanged: the process learns
about logins when a client presents a verified ID token and about logouts
when it ends its session. AuthSession turns those two events into a
subscription stream carrying an AuthUser (login) or None (logout).

Subscribers are called synchronously, in subscription order, on the
thread that calls sign_in()/sign_out() (the event loop in practice).
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

AuthStateCallback = Callable[[Optional["AuthUser"]], None]


@dataclass(frozen=True)
class AuthUser:
    """Base authentication fields of a signed-in Firebase user."""

    uid: str
    email: str = ""
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    phone_number: Optional[str] = None
    email_verified: bool = False
    creation_time: Optional[datetime] = None
    last_sign_in_time: Optional[datetime] = None


def _from_epoch(value: Optional[float], *, millis: bool = False) -> Optional[datetime]:
    if value is None:
        return None
    seconds = value / 1000.0 if millis else float(value)
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def auth_user_from_record(record: Any) -> AuthUser:
    """Convert a firebase_admin.auth.UserRecord into an AuthUser."""
    metadata = getattr(record, "user_metadata", None)
    return AuthUser(
        uid=record.uid,
        email=record.email or "",
        display_name=record.display_name,
        photo_url=record.photo_url,
        phone_number=record.phone_number,
        email_verified=bool(record.email_verified),
        creation_time=_from_epoch(
            getattr(metadata, "creation_timestamp", None), millis=True
        ),
        last_sign_in_time=_from_epoch(
            getattr(metadata, "last_sign_in_timestamp", None), millis=True
        ),
    )


def auth_user_from_claims(claims: Dict[str, Any]) -> AuthUser:
    """Convert verified ID-token claims into an AuthUser.

    ID tokens carry no account creation time; auth_time is the sign-in.
    """
    return AuthUser(
        uid=claims["uid"],
        email=claims.get("email") or "",
        display_name=claims.get("name"),
        photo_url=claims.get("picture"),
        phone_number=claims.get("phone_number"),
        email_verified=bool(claims.get("email_verified", False)),
        last_sign_in_time=_from_epoch(claims.get("auth_time")),
    )


class AuthSession:
    """Holds the currently authenticated user and notifies subscribers."""

    def __init__(self):
        self._current_user: Optional[AuthUser] = None
        self._subscribers: List[AuthStateCallback] = []

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current_user

    def subscribe(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register callback for auth-state changes. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def sign_in(self, user: AuthUser) -> None:
        self._current_user = user
        logger.info("Auth state: signed in %s", user.uid)
        self._notify(user)

    def sign_out(self) -> None:
        previous = self._current_user
        self._current_user = None
        logger.info("Auth state: signed out %s", previous.uid if previous else "-")
        self._notify(None)

    def _notify(self, user: Optional[AuthUser]) -> None:
        for callback in list(self._subscribers):
            try:
                callback(user)
            except Exception:
                logger.exception("Auth-state subscriber failed")
