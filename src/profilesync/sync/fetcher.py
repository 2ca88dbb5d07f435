"""Profile fetcher: Firebase Auth record + Firestore profile document → IdentitySnapshot."""
import logging
from typing import Union

from profilesync.identity.session import AuthUser
from profilesync.sync.errors import DocumentReadWarning, FetchError
from profilesync.sync.normalizer import IdentitySnapshot, build_snapshot

logger = logging.getLogger(__name__)

UserHandle = Union[AuthUser, str]


def handle_uid(handle: UserHandle) -> str:
    return handle.uid if isinstance(handle, AuthUser) else handle


class ProfileFetcher:
    """Reads a fresh IdentitySnapshot for one user on every sync attempt."""

    def __init__(self, client):
        """
        Args:
            client: FirebaseClient instance (or AsyncMock in tests).
        """
        self.client = client

    async def fetch(self, handle: UserHandle) -> IdentitySnapshot:
        """
        Build a snapshot for handle.

        Args:
            handle: The session AuthUser (base fields already present) or a
                bare uid, in which case base fields come from Firebase Auth.

        Returns:
            IdentitySnapshot. A missing or unreadable profile document is not
            fatal; the snapshot then carries base auth fields only.

        Raises:
            FetchError: if the base auth fields can't be read.
        """
        if not handle:
            raise FetchError("No Firebase user to fetch")

        if isinstance(handle, AuthUser):
            base = handle
        else:
            try:
                base = await self.client.get_user(handle)
            except Exception as exc:
                raise FetchError(f"Firebase Auth lookup failed for {handle}: {exc}") from exc

        document = None
        document_error = None
        try:
            document = await self.client.get_profile_document(base.uid)
        except Exception as exc:
            document_error = str(exc) or exc.__class__.__name__
            logger.warning(
                "%s",
                DocumentReadWarning(
                    f"Profile document unreadable for {base.uid}, using auth fields only: {document_error}"
                ),
            )

        return build_snapshot(base, document, document_error=document_error)
