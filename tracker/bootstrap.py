"""Composition root: stores, collectors and the registry for a host process.

Usage::

    registry = await build_registry(platform_source)
    manager = HealthDataManager(registry)
"""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

from tracker.collectors.cache import (
    BucketStore,
    CursorStore,
    InMemoryBucketStore,
    InMemoryCursorStore,
    PostgresBucketStore,
    PostgresCursorStore,
)
from tracker.collectors.config_loader import SyncConfig, get_sync_config, load_sync_config
from tracker.collectors.registry import CollectorRegistry
from tracker.collectors.source import PlatformSource
from tracker.collectors.steps import register_steps_collector
from tracker.config import Settings, get_settings
from tracker.services.postgres import init_pool

logger = logging.getLogger("tracker.bootstrap")


def resolve_sync_config(settings: Settings) -> SyncConfig:
    if settings.sync_config_path:
        return load_sync_config(Path(settings.sync_config_path))
    return get_sync_config()


async def build_stores(
    settings: Settings, pool: asyncpg.Pool | None = None
) -> tuple[BucketStore, CursorStore]:
    """Return the steps bucket store and the cursor store for ``settings``.

    Postgres when ``database_url`` is set (tables created if missing),
    in-memory otherwise.
    """
    if not settings.database_url:
        logger.warning("database_url not set — using in-memory stores (not durable)")
        return InMemoryBucketStore(), InMemoryCursorStore()

    pool = pool or await init_pool(settings)
    bucket_store = PostgresBucketStore(pool, table="steps_hourly")
    cursor_store = PostgresCursorStore(pool)
    await bucket_store.ensure_schema()
    await cursor_store.ensure_schema()
    return bucket_store, cursor_store


async def build_registry(
    source: PlatformSource,
    settings: Settings | None = None,
    pool: asyncpg.Pool | None = None,
) -> CollectorRegistry:
    """Build a registry with every metric module wired to ``source``."""
    settings = settings or get_settings()
    config = resolve_sync_config(settings)
    bucket_store, cursor_store = await build_stores(settings, pool)

    registry = CollectorRegistry()
    register_steps_collector(registry, source, bucket_store, cursor_store, config=config.sync)
    logger.info(
        "Registry ready: %s",
        ", ".join(sorted(m.value for m in registry.get_available_types())),
    )
    return registry
