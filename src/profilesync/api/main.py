"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from profilesync.api.routes import session as session_routes, sync as sync_routes
from profilesync.config import get_settings
from profilesync.db.engine import get_engine
from profilesync.identity.client import FirebaseClient
from profilesync.identity.credentials import FirebaseCredentials
from profilesync.sync.sync_service import ProfileSyncService
from profilesync.triggers.manager import RealtimeSyncOptions, RealtimeSyncTriggers


def create_app(engine=None, client=None) -> FastAPI:
    """
    Build and return the FastAPI app.

    Args:
        engine: SQLAlchemy engine. Defaults to get_engine().
        client: FirebaseClient. Built from settings at startup if omitted.
    """

    engine = engine or get_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        firebase = client or FirebaseClient(
            FirebaseCredentials(settings).build_app(),
            collection=settings.profiles_collection,
        )
        service = ProfileSyncService(client=firebase, engine=engine)
        triggers = RealtimeSyncTriggers(
            firebase, service, RealtimeSyncOptions.from_settings(settings)
        )
        triggers.initialize()

        app.state.firebase = firebase
        app.state.sync_service = service
        app.state.triggers = triggers
        try:
            yield
        finally:
            triggers.cleanup()

    app = FastAPI(
        title="Profile Sync API",
        description="Firebase identity to application profile sync",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(session_routes.router, prefix="/auth", tags=["auth"])
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
