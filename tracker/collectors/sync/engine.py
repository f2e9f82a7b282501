"""Incremental sync engine for one metric.

Owns the change-token lifecycle for its metric:

1. No saved token → initial sync: request a change token, fetch hour buckets
   for the lookback window, upsert them, then save the token.
2. Saved token → incremental drain: page through the change feed until the
   source reports no more pages.  Each changed record's time range is widened
   to whole hours and the authoritative aggregate for that window is fetched
   again and upserted by key.  Events are never applied as deltas, so
   replaying a page is harmless.  The new token is saved only after the last
   page; afterwards buckets beyond the retention horizon are pruned.

Any fetch or store failure aborts the pass and leaves the saved token where
it was.  The failure is returned in the SyncResult; retry cadence belongs to
the caller.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Awaitable, Callable, Iterable, TypeVar

from tracker.collectors.aggregator import local_day_start
from tracker.collectors.base import (
    BUCKET_DURATION,
    HourBucket,
    MetricType,
    PermissionState,
    SyncError,
    SyncErrorKind,
    SyncResult,
    floor_hour,
    utc_now,
)
from tracker.collectors.cache.bucket_cache import BucketCache
from tracker.collectors.cache.cursor import CursorStore
from tracker.collectors.cache.store import StoreError
from tracker.collectors.config_loader import EngineConfig, get_sync_config
from tracker.collectors.source import (
    ChangeEvent,
    ChangeKind,
    PlatformSource,
    SourceError,
    SourceUnavailableError,
)

logger = logging.getLogger("tracker.collectors.sync.engine")

T = TypeVar("T")

Window = tuple[datetime, datetime]


def change_window(event: ChangeEvent) -> Window | None:
    """Return the hour-aligned window to re-fetch for a change, if any.

    ``start`` is truncated down to the hour; ``end`` is truncated down to the
    hour and extended by one hour.
    """
    if event.kind is not ChangeKind.UPSERT or event.start is None or event.end is None:
        return None
    return floor_hour(event.start), floor_hour(event.end) + BUCKET_DURATION


def coalesce_windows(windows: Iterable[Window]) -> list[Window]:
    """Merge overlapping or touching windows into ascending disjoint ones."""
    merged: list[Window] = []
    for start, end in sorted(windows):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


class SyncEngine:
    """Single-flight sync passes for one metric.

    At most one pass runs at a time.  A ``sync()`` call that arrives while a
    pass is running joins it and returns the same result without touching the
    source.  A pass keeps running if the awaiting caller is cancelled.

    Usage::

        engine = SyncEngine(MetricType.STEPS, source, cache, cursors)
        result = await engine.sync()
        if not result.ok:
            logger.warning("sync failed: %s", result.error)
    """

    def __init__(
        self,
        metric: MetricType,
        source: PlatformSource,
        cache: BucketCache,
        cursors: CursorStore,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            metric:  Metric this engine syncs.
            source:  Platform data source binding.
            cache:   Bucket cache that receives fetched buckets.
            cursors: Change-token persistence.
            config:  Lookback / retention windows (defaults to sync_config.yaml).
            clock:   Returns the current aware UTC time.
            tz:      Zone for the initial lookback's day boundary (None = local).
        """
        self._metric = metric
        self._source = source
        self._cache = cache
        self._cursors = cursors
        self._config = config or get_sync_config().sync
        self._clock = clock or utc_now
        self._tz = tz
        self._inflight: asyncio.Task[SyncResult] | None = None

    @property
    def metric(self) -> MetricType:
        return self._metric

    @property
    def is_syncing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def check_permissions(self) -> PermissionState:
        try:
            return await self._source.permission_state(self._metric)
        except SourceUnavailableError:
            return PermissionState.UNAVAILABLE

    async def sync(self) -> SyncResult:
        """Run one pass, or join the pass already in flight."""
        if self.is_syncing:
            logger.info("%s sync already in flight, joining", self._metric.value)
            return await asyncio.shield(self._inflight)
        return await self._start(full=False)

    async def force_full_sync(self) -> SyncResult:
        """Discard the saved token and run a pass as if never synced.

        Waits for an in-flight pass to finish first.
        """
        while self.is_syncing:
            await asyncio.wait({self._inflight})
        return await self._start(full=True)

    async def _start(self, full: bool) -> SyncResult:
        task = asyncio.ensure_future(self._run_pass(full))
        task.add_done_callback(self._log_pass_failure)
        self._inflight = task
        return await asyncio.shield(task)

    def _log_pass_failure(self, task: asyncio.Task) -> None:
        # Retrieves the exception even when every caller was cancelled
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s sync pass crashed: %s", self._metric.value, exc)

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    async def _run_pass(self, full: bool) -> SyncResult:
        result = SyncResult(metric_type=self._metric, started_at=self._clock())
        try:
            if full:
                await self._cursors.clear(self._metric)
                logger.info("%s cursor cleared for full sync", self._metric.value)
            token = await self._cursors.load(self._metric)
            if token is None:
                result.mode = "initial"
                await self._initial_sync(result)
            else:
                await self._incremental_sync(token, result)
        except SourceUnavailableError as exc:
            result.ok = False
            result.error = SyncError(SyncErrorKind.SOURCE_UNAVAILABLE, str(exc))
        except SourceError as exc:
            result.ok = False
            result.error = SyncError(SyncErrorKind.FETCH_FAILED, str(exc))
        except StoreError as exc:
            result.ok = False
            result.error = SyncError(SyncErrorKind.STORE_FAILED, str(exc))

        result.finished_at = self._clock()
        if result.ok:
            logger.info(
                "%s %s sync complete → %d buckets, %d pages, %d windows, %d pruned",
                self._metric.value,
                result.mode,
                result.buckets_written,
                result.pages_read,
                result.windows_fetched,
                result.buckets_pruned,
            )
        else:
            logger.warning(
                "%s %s sync aborted after %d buckets: %s",
                self._metric.value,
                result.mode,
                result.buckets_written,
                result.error,
            )
        return result

    async def _initial_sync(self, result: SyncResult) -> None:
        now = self._clock()
        start = local_day_start(
            now - timedelta(days=self._config.initial_lookback_days), self._tz
        )
        token = await self._call_source(
            "current_change_token", self._source.current_change_token, [self._metric]
        )
        await self._fetch_and_store(start, now, result)
        await self._cursors.save(self._metric, token)

    async def _incremental_sync(self, token: str, result: SyncResult) -> None:
        current = token
        while True:
            page = await self._call_source("changes_since", self._source.changes_since, current)
            result.pages_read += 1
            windows = coalesce_windows(
                w for w in (change_window(e) for e in page.events) if w is not None
            )
            for start, end in windows:
                await self._fetch_and_store(start, end, result)
            current = page.next_token or current
            if not page.has_more:
                break

        await self._cursors.save(self._metric, current)

        cutoff = self._clock() - timedelta(days=self._config.retention_days)
        result.buckets_pruned = await self._cache.delete_before(cutoff)

    async def _fetch_and_store(self, start: datetime, end: datetime, result: SyncResult) -> None:
        response = await self._call_source(
            "aggregate", self._source.aggregate, self._metric, start, end, BUCKET_DURATION
        )
        synced_at = self._clock()
        try:
            buckets = [
                HourBucket(
                    start=b.start.astimezone(timezone.utc),
                    end=b.end.astimezone(timezone.utc),
                    count=int(b.count),
                    source_zone_offset=b.zone_offset or "+00:00",
                    synced_at=synced_at,
                )
                for b in response
            ]
        except (TypeError, ValueError) as exc:
            raise SourceError(f"Malformed aggregate for [{start}, {end}): {exc}") from exc

        await self._cache.upsert(buckets)
        result.windows_fetched += 1
        result.buckets_written += len(buckets)
        logger.debug(
            "%s window [%s, %s) → %d buckets", self._metric.value, start, end, len(buckets)
        )

    async def _call_source(
        self, operation: str, fn: Callable[..., Awaitable[T]], *args: object
    ) -> T:
        try:
            return await fn(*args)
        except SourceError:
            raise
        except Exception as exc:
            raise SourceError(f"{operation} failed: {exc}") from exc
