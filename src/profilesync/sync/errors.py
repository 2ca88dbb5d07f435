"""Sync engine exception and warning types."""


class SyncError(RuntimeError):
    """Base class for sync pipeline failures."""


class FetchError(SyncError):
    """Base Firebase Auth read unavailable; no snapshot was produced."""


class ExecutorError(SyncError):
    """Constraint or connectivity failure writing to the application DB."""


class BatchInProgressError(SyncError):
    """A batch sweep is already running; the new request was rejected."""


class AuthenticationLostError(SyncError):
    """The queued user is no longer the authenticated user at drain time."""


class DocumentReadWarning(UserWarning):
    """Profile document unreadable; the snapshot holds base auth fields only."""


class MappingUpdateWarning(UserWarning):
    """Mapping upsert failed after the profile write committed."""
