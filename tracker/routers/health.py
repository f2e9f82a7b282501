"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from tracker.config import get_settings
from tracker.dependencies import Registry
from tracker.services.postgres import get_pool

router = APIRouter(tags=["system"])
logger = logging.getLogger("tracker.health")


@router.get("/health")
async def health_check(registry: Registry) -> dict:
    """Liveness probe. Returns 200 if the process is up.

    Also performs a lightweight DB check when a database is configured.
    """
    settings = get_settings()
    database = "not_configured"
    if settings.database_url:
        try:
            pool = get_pool()
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            database = "connected"
        except Exception as exc:
            logger.warning("Health check DB probe failed: %s", exc)
            database = "unreachable"

    syncing = {}
    for metric in registry.get_available_types():
        engine = getattr(registry.get_collector(metric), "engine", None)
        syncing[metric.value] = bool(engine and engine.is_syncing)

    return {
        "status": "degraded" if database == "unreachable" else "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": database,
        "collectors": sorted(syncing),
        "syncing": syncing,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
