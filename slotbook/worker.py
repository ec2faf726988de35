"""
ARQ background worker.

Runs the lifecycle sweep (scheduled, live, completed) on a cron. Start with:

    arq slotbook.worker.WorkerSettings
"""
import logging

from arq.connections import RedisSettings
from arq.cron import cron

from slotbook.core.config import settings
from slotbook.core.deps import get_store
from slotbook.core.log_config import configure_logging
from slotbook.services.audit import TransitionPublisher
from slotbook.services.events import EventService

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    return RedisSettings.from_dsn(settings.REDIS_URL)


def _sweep_minutes() -> set[int]:
    step = max(1, min(settings.SWEEP_INTERVAL_MINUTES, 60))
    return set(range(0, 60, step))


async def startup(ctx) -> None:
    configure_logging()
    ctx["events"] = EventService(get_store(), TransitionPublisher())
    logger.info("Sweep worker started (every %d min)", settings.SWEEP_INTERVAL_MINUTES)


async def shutdown(ctx) -> None:
    if settings.STORE_PROVIDER == "sql":
        from slotbook.db.session import engine

        await engine.dispose()


async def lifecycle_sweep_task(ctx) -> dict:
    """Advance events whose published time has started or finished."""
    records = await ctx["events"].sweep()
    return {"applied": len(records)}


class WorkerSettings:
    functions = [lifecycle_sweep_task]
    redis_settings = get_redis_settings()
    on_startup = startup
    on_shutdown = shutdown

    cron_jobs = [
        cron(lifecycle_sweep_task, minute=_sweep_minutes(), run_at_startup=True),
    ]
