"""Session routes: feed client logins and logouts into the auth-state stream."""
import logging

from fastapi import APIRouter, Depends
from firebase_admin import exceptions
from pydantic import BaseModel

from profilesync.api.deps import get_firebase, require_session_owner, verified_claims
from profilesync.identity.client import FirebaseClient
from profilesync.identity.session import AuthUser, auth_user_from_claims

logger = logging.getLogger(__name__)

router = APIRouter()


class SessionRequest(BaseModel):
    id_token: str


class SessionResponse(BaseModel):
    uid: str
    email: str


@router.post("/session", response_model=SessionResponse)
async def sign_in(request: SessionRequest, firebase: FirebaseClient = Depends(get_firebase)):
    """
    Verify the client's ID token and mark that user as signed in.

    The full auth record is preferred (it carries the account creation
    time); the token claims are used if the record can't be read.
    """
    claims = await verified_claims(request.id_token, firebase)
    try:
        user = await firebase.get_user(claims["uid"])
    except (exceptions.FirebaseError, ValueError) as exc:
        logger.warning("Auth record for %s unavailable, using token claims: %s", claims["uid"], exc)
        user = auth_user_from_claims(claims)

    firebase.session.sign_in(user)
    return SessionResponse(uid=user.uid, email=user.email)


@router.delete("/session")
async def sign_out(
    _owner: AuthUser = Depends(require_session_owner),
    firebase: FirebaseClient = Depends(get_firebase),
):
    """End the caller's session (auth-state logout)."""
    if firebase.current_user is None:
        return {"message": "No active session"}
    firebase.session.sign_out()
    return {"message": "Signed out"}
