"""
Main entrypoint: serves the FastAPI app (session + sync routes) under uvicorn.

The app's lifespan starts the realtime sync triggers and, when
ENABLE_BATCH_SYNC is on, the periodic batch sweep.

Usage:
    python -m profilesync
    uvicorn profilesync.api.main:app --host 0.0.0.0 --port 8000
"""
import logging

import uvicorn

from profilesync.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


if __name__ == "__main__":
    logger.info("Starting profile sync API on %s:%d", settings.api_host, settings.api_port)
    uvicorn.run(
        "profilesync.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
