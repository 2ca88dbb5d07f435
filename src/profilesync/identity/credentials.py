"""
Firebase Admin app initialisation from service-account settings.

Credentials are resolved in this order:

  1. FIREBASE_CREDENTIALS_FILE: path to a service-account JSON file.
  2. FIREBASE_PROJECT_ID + FIREBASE_CLIENT_EMAIL + FIREBASE_PRIVATE_KEY.
     Private keys pasted into .env usually carry literal "\\n" sequences;
     they are normalised to real newlines before use.
  3. Application Default Credentials (gcloud / workload identity).

If none of them yields a usable credential, MissingCredentialsError is raised
so startup fails loudly instead of every sync failing later.
"""
import logging
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials

from profilesync.config import Settings, get_settings

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


# ── Exceptions ────────────────────────────────────────────────────────────────

class MissingCredentialsError(RuntimeError):
    """Raised when no Firebase Admin credential can be built."""


# ── Main class ────────────────────────────────────────────────────────────────

class FirebaseCredentials:
    """
    Builds (or reuses) the firebase_admin App for this process.

    Usage:
        app = FirebaseCredentials().build_app()
        client = FirebaseClient(app=app)
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()

    def has_service_account(self) -> bool:
        """Return True if service-account settings are present."""
        s = self._settings
        if s.firebase_credentials_file:
            return True
        return bool(s.firebase_project_id and s.firebase_client_email and s.firebase_private_key)

    def service_account_info(self) -> Dict[str, Any]:
        """Service-account dict in the shape google-auth expects."""
        s = self._settings
        return {
            "type": "service_account",
            "project_id": s.firebase_project_id,
            "client_email": s.firebase_client_email,
            "private_key": s.firebase_private_key.replace("\\n", "\n"),
            "token_uri": TOKEN_URI,
        }

    def build_credential(self) -> credentials.Base:
        """
        Return a firebase_admin credential.

        Raises:
            MissingCredentialsError: if the service account is invalid or
                Application Default Credentials are unavailable.
        """
        s = self._settings
        try:
            if s.firebase_credentials_file:
                return credentials.Certificate(s.firebase_credentials_file)
            if self.has_service_account():
                return credentials.Certificate(self.service_account_info())
        except (ValueError, IOError) as exc:
            raise MissingCredentialsError(
                f"Invalid Firebase service account: {exc}"
            ) from exc

        logger.warning(
            "Firebase service account not configured, trying Application Default Credentials"
        )
        cred = credentials.ApplicationDefault()
        try:
            cred.get_credential()
        except Exception as exc:
            raise MissingCredentialsError(
                "Firebase Admin is not configured. Set FIREBASE_CLIENT_EMAIL and "
                "FIREBASE_PRIVATE_KEY (or FIREBASE_CREDENTIALS_FILE) in .env."
            ) from exc
        return cred

    def build_app(self) -> firebase_admin.App:
        """Return the default firebase_admin App, initialising it on first call."""
        try:
            return firebase_admin.get_app()
        except ValueError:
            pass

        options = {}
        if self._settings.firebase_project_id:
            options["projectId"] = self._settings.firebase_project_id
        app = firebase_admin.initialize_app(self.build_credential(), options or None)
        logger.info("Firebase Admin initialised (project=%s)", app.project_id)
        return app
