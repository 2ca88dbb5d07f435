"""Request dependencies: app.state accessors and bearer-token auth."""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from firebase_admin import auth, exceptions

from profilesync.identity.client import FirebaseClient
from profilesync.identity.session import AuthUser, auth_user_from_claims
from profilesync.sync.sync_service import ProfileSyncService
from profilesync.triggers.manager import RealtimeSyncTriggers

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def get_firebase(request: Request) -> FirebaseClient:
    return request.app.state.firebase


def get_sync_service(request: Request) -> ProfileSyncService:
    return request.app.state.sync_service


def get_triggers(request: Request) -> RealtimeSyncTriggers:
    return request.app.state.triggers


async def verified_claims(id_token: str, firebase: FirebaseClient) -> dict:
    """
    Verify an ID token.

    Raises:
        HTTPException: 503 if Google's signing certificates can't be fetched,
            401 for any token Firebase rejects.
    """
    try:
        return await firebase.verify_id_token(id_token)
    except auth.CertificateFetchError as exc:
        logger.error("Could not fetch ID token certificates: %s", exc)
        raise HTTPException(status_code=503, detail="Identity provider unavailable") from exc
    except (exceptions.FirebaseError, ValueError) as exc:
        logger.warning("Rejected ID token: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid ID token") from exc


async def get_requester(
    authorization: Optional[str] = Header(default=None),
    firebase: FirebaseClient = Depends(get_firebase),
) -> AuthUser:
    """Resolve the Authorization: Bearer <ID token> header to an AuthUser."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Missing bearer token")
    claims = await verified_claims(token.strip(), firebase)
    return auth_user_from_claims(claims)


def require_admin(
    requester: AuthUser = Depends(get_requester),
    service: ProfileSyncService = Depends(get_sync_service),
) -> AuthUser:
    """Only requesters whose synced profile has role=admin may pass."""
    profile = service.executor.load_profile(requester.uid)
    if profile is None or profile.role != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin role required")
    return requester


async def require_session_owner(
    requester: AuthUser = Depends(get_requester),
    firebase: FirebaseClient = Depends(get_firebase),
) -> AuthUser:
    """Only the signed-in session user may act on the session."""
    current = firebase.current_user
    if current is not None and current.uid != requester.uid:
        raise HTTPException(status_code=403, detail="Not the signed-in user")
    return requester
