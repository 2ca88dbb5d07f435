"""SQLModel engine singleton."""
from sqlmodel import SQLModel, create_engine

from profilesync.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}  # SQLite only; safe for FastAPI
        _engine = create_engine(
            settings.database_url,
            connect_args=connect_args,
            pool_pre_ping=True,
        )
        # Import all models so metadata is populated before create_all
        from profilesync.models.profile import FirebaseUserMapping, Profile  # noqa
        from profilesync.models.sync import SyncLog  # noqa
        SQLModel.metadata.create_all(_engine)
        from profilesync.db.migrations import run_migrations
        run_migrations(_engine)
    return _engine
