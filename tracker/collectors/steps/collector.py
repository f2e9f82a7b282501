"""Step-count collector.

Reads are served from the local hour-bucket cache and never wait for a sync
pass; syncing is delegated to a SyncEngine bound to the steps metric.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, tzinfo
from functools import partial
from typing import Callable

from tracker.collectors.aggregator import aggregate, local_day_start
from tracker.collectors.base import (
    Granularity,
    GranularDataCollector,
    MetricPoint,
    MetricType,
    PermissionState,
    SyncResult,
    utc_now,
)
from tracker.collectors.cache.bucket_cache import BucketCache, Subscription
from tracker.collectors.cache.cursor import CursorStore
from tracker.collectors.config_loader import EngineConfig
from tracker.collectors.source import PlatformSource
from tracker.collectors.sync.engine import SyncEngine

logger = logging.getLogger("tracker.collectors.steps")


class StepsCollector(GranularDataCollector):
    """Hourly / daily step counts backed by a bucket cache.

    Usage::

        collector = StepsCollector(source, BucketCache(store), cursors)
        await collector.sync()
        points = await collector.get(start, end, Granularity.DAILY)
    """

    METRIC_TYPE = MetricType.STEPS
    DISPLAY_NAME = "Steps"

    def __init__(
        self,
        source: PlatformSource,
        cache: BucketCache,
        cursors: CursorStore,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        """Initialize the collector.

        Args:
            source:  Platform data source binding.
            cache:   Hour-bucket cache for steps.
            cursors: Change-token persistence.
            config:  Engine windows (defaults to sync_config.yaml).
            clock:   Returns the current aware UTC time.
            tz:      Zone for day boundaries (None = system local zone).
        """
        self._cache = cache
        self._clock = clock or utc_now
        self._tz = tz
        self._engine = SyncEngine(
            self.METRIC_TYPE, source, cache, cursors, config=config, clock=self._clock, tz=tz
        )

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    @property
    def cache(self) -> BucketCache:
        return self._cache

    async def check_permissions(self) -> PermissionState:
        return await self._engine.check_permissions()

    async def sync(self) -> SyncResult:
        return await self._engine.sync()

    async def force_full_sync(self) -> SyncResult:
        return await self._engine.force_full_sync()

    async def get(
        self, start: datetime, end: datetime, granularity: Granularity
    ) -> list[MetricPoint]:
        if start.tzinfo is None or end.tzinfo is None:
            raise ValueError("start and end must be timezone-aware")
        buckets = await self._cache.query(start, end)
        return aggregate(buckets, granularity, self._tz)

    async def observe(self, granularity: Granularity = Granularity.HOURLY) -> Subscription:
        granularity = Granularity(granularity)
        day_start, day_end = self._today()
        logger.debug("Observing %s steps for [%s, %s)", granularity.value, day_start, day_end)
        return await self._cache.subscribe(
            day_start, day_end, transform=partial(aggregate, granularity=granularity, tz=self._tz)
        )

    def _today(self) -> tuple[datetime, datetime]:
        day_start = local_day_start(self._clock(), self._tz)
        # +30h lands inside the next local day even on 23h / 25h DST days
        return day_start, local_day_start(day_start + timedelta(hours=30), self._tz)
