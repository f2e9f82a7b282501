"""Steps metric module.

    StepsCollector           — granular collector over the steps bucket cache
    register_steps_collector — build the collector and wire it into a registry
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Callable

from tracker.collectors.base import MetricType
from tracker.collectors.cache import BucketCache, BucketStore, CursorStore
from tracker.collectors.config_loader import EngineConfig
from tracker.collectors.registry import CollectorRegistry
from tracker.collectors.source import PlatformSource
from tracker.collectors.steps.collector import StepsCollector

logger = logging.getLogger("tracker.collectors.steps")

__all__ = ["StepsCollector", "register_steps_collector"]


def register_steps_collector(
    registry: CollectorRegistry,
    source: PlatformSource,
    bucket_store: BucketStore,
    cursor_store: CursorStore,
    config: EngineConfig | None = None,
    clock: Callable[[], datetime] | None = None,
    tz: tzinfo | None = None,
) -> StepsCollector:
    """Create the steps collector and register it under ``MetricType.STEPS``."""
    collector = StepsCollector(
        source, BucketCache(bucket_store), cursor_store, config=config, clock=clock, tz=tz
    )
    registry.register(MetricType.STEPS, collector)
    logger.info("Steps collector registered (%s)", type(bucket_store).__name__)
    return collector
