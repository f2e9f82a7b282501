"""HTTP host for the metrics read API — FastAPI application factory.

The host builds the registry in its composition root and hands it over::

    registry = await build_registry(platform_source)
    app = create_app(registry, scheduler=SyncScheduler(registry))

Run with uvicorn's ``--factory`` flag pointing at a host module that does
the above.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from tracker.collectors.registry import CollectorRegistry
from tracker.collectors.sync.scheduler import SyncScheduler
from tracker.config import Settings, get_settings
from tracker.routers import health, metrics
from tracker.services.postgres import close_pool

logger = logging.getLogger("tracker")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


async def run_scheduler_loop(scheduler: SyncScheduler, poll_seconds: float) -> None:
    """Enqueue due metrics and run them every ``poll_seconds`` until cancelled."""
    while True:
        try:
            scheduler.enqueue_due()
            await scheduler.run_all()
        except Exception:
            logger.exception("Scheduler tick failed")
        await asyncio.sleep(poll_seconds)


def create_app(
    registry: CollectorRegistry,
    scheduler: SyncScheduler | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logger.info(
            "Starting %s v%s [%s]",
            settings.app_name,
            settings.app_version,
            settings.environment,
        )
        loop_task = None
        if scheduler is not None:
            loop_task = asyncio.create_task(
                run_scheduler_loop(scheduler, settings.scheduler_poll_seconds)
            )
        yield
        if loop_task is not None:
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
        await close_pool()
        logger.info("%s shut down", settings.app_name)

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Cached platform health metrics at hourly or daily granularity.",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.registry = registry

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(metrics.router, prefix="/api/v1")

    return app
