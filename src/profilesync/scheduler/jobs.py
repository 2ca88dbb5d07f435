"""
APScheduler job for the periodic batch sweep.

The sweep catches anything the real-time triggers missed (profile documents
edited while nobody was signed in, failures that exhausted their retries).
It is optional and owned by RealtimeSyncTriggers, which starts it when
enable_batch_sync is on and shuts it down on cleanup().
"""
import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from profilesync.config import get_settings
from profilesync.sync.errors import BatchInProgressError

logger = logging.getLogger(__name__)


def build_scheduler(
    service,
    interval_seconds: Optional[float] = None,
    event_loop: Optional[asyncio.AbstractEventLoop] = None,
) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        service: ProfileSyncService whose sync_all_users() the job runs.
        interval_seconds: Sweep interval. Defaults to BATCH_SYNC_INTERVAL.
        event_loop: Loop to run jobs on. Defaults to the loop at start().

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    if event_loop is not None:
        scheduler = AsyncIOScheduler(event_loop=event_loop)
    else:
        scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _batch_sync,
        trigger="interval",
        seconds=interval_seconds or settings.batch_sync_interval,
        id="batch_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"service": service},
    )

    return scheduler


async def _batch_sync(service) -> None:
    """
    Periodic job: sweep every profile document through the sync pipeline.

    Never raises, so the scheduler stays alive.
    """
    logger.info("Periodic batch sync starting")

    try:
        result = await service.sync_all_users()
        logger.info(
            "Periodic batch sync complete: %d/%d synced, %d errors",
            result.success, result.total, result.errors,
        )
    except BatchInProgressError:
        logger.warning("Periodic batch sync skipped: a sweep is already running")
    except Exception as exc:
        logger.error("Periodic batch sync failed: %s", exc)
