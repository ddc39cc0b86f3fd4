"""Background loop that keeps reorder statuses in step with their handoffs.

Uses FastAPI's lifespan context to start/stop an asyncio background loop
that runs `close_resolved_reorders()` every `REORDER_SWEEP_SECONDS`
(default 300).  The same sweep is available on demand through
`python -m linescout.cli close-reorders`.

Usage:
    from linescout.services.scheduler import lifespan
    app = FastAPI(lifespan=lifespan, ...)
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from linescout.config import settings
from linescout.database import async_session
from linescout.utils.cache import close_redis

logger = logging.getLogger("linescout.scheduler")


async def run_reorder_sweep() -> dict[str, int] | None:
    """One sweep in its own session. Errors are logged, not raised."""
    from linescout.services.reorders import close_resolved_reorders

    try:
        async with async_session() as db:
            try:
                counts = await close_resolved_reorders(db)
                await db.commit()
                return counts
            except Exception:
                await db.rollback()
                raise
    except Exception:
        logger.exception("Reorder sweep failed")
        return None


async def _scheduler_loop() -> None:
    interval = max(settings.reorder_sweep_seconds, 30)
    while True:
        await asyncio.sleep(interval)
        await run_reorder_sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the sweep on startup, cancel on shutdown."""
    task = asyncio.create_task(_scheduler_loop())
    logger.info("Reorder sweep started (every %ds)", settings.reorder_sweep_seconds)
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await close_redis()
        logger.info("Reorder sweep stopped")
