"""Shared fixtures and a fake platform source for collector tests."""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable
from unittest.mock import AsyncMock, MagicMock

import pytest

from tracker.collectors.base import HourBucket, MetricType, PermissionState
from tracker.collectors.cache import (
    BucketCache,
    InMemoryBucketStore,
    InMemoryCursorStore,
)
from tracker.collectors.config_loader import EngineConfig, SchedulerConfig
from tracker.collectors.source import (
    AggregateBucket,
    ChangeEvent,
    ChangeKind,
    ChangesPage,
    SourceError,
)
from tracker.collectors.sync.engine import SyncEngine

UTC = timezone.utc

# Fixed "now" for every test clock: 12:30 UTC, deliberately not hour-aligned
NOW = datetime(2026, 3, 15, 12, 30, tzinfo=UTC)
TODAY = datetime(2026, 3, 15, tzinfo=UTC)


def hour(day: int, h: int, month: int = 3) -> datetime:
    return datetime(2026, month, day, h, tzinfo=UTC)


def bucket(start: datetime, count: int, offset: str = "+00:00") -> HourBucket:
    return HourBucket(start=start, end=start + timedelta(hours=1), count=count, source_zone_offset=offset)


def snapshot(buckets: Iterable[HourBucket]) -> dict[datetime, int]:
    return {b.start: b.count for b in buckets}


# ---------------------------------------------------------------------------
# Fake platform
# ---------------------------------------------------------------------------


@dataclass
class StepRecord:
    start: datetime
    end: datetime
    count: int
    zone_offset: str | None = None


class FakePlatformSource:
    """In-memory stand-in for the platform health-data API.

    Raw step records are aggregated on request; every ``add_record`` appends
    an UPSERT event to the change feed.  Tokens are feed positions
    (``"tok-<n>"``) and pages hold ``page_size`` events.

    Set ``failures[operation]`` to an exception to make the next call of that
    operation raise it (``fail_after`` delays it by that many successful calls).
    """

    def __init__(self, permission: PermissionState = PermissionState.GRANTED) -> None:
        self.records: list[StepRecord] = []
        self.feed: list[ChangeEvent] = []
        self.page_size = 2
        self.permission = permission
        self.calls: Counter[str] = Counter()
        self.aggregate_windows: list[tuple[datetime, datetime]] = []
        self.failures: dict[str, Exception] = {}
        self.fail_after: dict[str, int] = {}

    def add_record(
        self,
        start: datetime,
        count: int,
        minutes: int = 10,
        zone_offset: str | None = None,
        notify: bool = True,
    ) -> StepRecord:
        record = StepRecord(start, start + timedelta(minutes=minutes), count, zone_offset)
        self.records.append(record)
        if notify:
            self.feed.append(ChangeEvent(ChangeKind.UPSERT, record.start, record.end))
        return record

    def _maybe_fail(self, operation: str) -> None:
        self.calls[operation] += 1
        if operation not in self.failures:
            return
        remaining = self.fail_after.get(operation, 0)
        if remaining > 0:
            self.fail_after[operation] = remaining - 1
            return
        raise self.failures.pop(operation)

    async def aggregate(
        self, metric: MetricType, start: datetime, end: datetime, bucket: timedelta
    ) -> list[AggregateBucket]:
        self._maybe_fail("aggregate")
        self.aggregate_windows.append((start, end))
        await asyncio.sleep(0)
        out: list[AggregateBucket] = []
        cursor = start
        while cursor < end:
            slice_end = min(cursor + bucket, end)
            matching = [r for r in self.records if cursor <= r.start < slice_end]
            if matching:
                out.append(
                    AggregateBucket(
                        start=cursor,
                        end=slice_end,
                        count=sum(r.count for r in matching),
                        zone_offset=matching[-1].zone_offset,
                    )
                )
            cursor = slice_end
        return out

    async def current_change_token(self, metrics: Iterable[MetricType]) -> str:
        self._maybe_fail("current_change_token")
        return f"tok-{len(self.feed)}"

    async def changes_since(self, token: str) -> ChangesPage:
        self._maybe_fail("changes_since")
        position = int(token.split("-")[1])
        events = self.feed[position : position + self.page_size]
        next_position = position + len(events)
        return ChangesPage(
            events=list(events),
            next_token=f"tok-{next_position}",
            has_more=next_position < len(self.feed),
        )

    async def permission_state(self, metric: MetricType) -> PermissionState:
        self._maybe_fail("permission_state")
        return self.permission


def seed_records(source: FakePlatformSource, rng: random.Random, days: int, n: int) -> None:
    """Add ``n`` random records within the ``days`` before NOW, without notifying."""
    horizon = int(timedelta(days=days).total_seconds() // 60)
    for _ in range(n):
        start = NOW - timedelta(minutes=rng.randint(11, horizon))
        source.add_record(start, rng.randint(1, 500), notify=False)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(initial_lookback_days=30, retention_days=366)


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    return SchedulerConfig(
        max_concurrent=2,
        default_interval_seconds=3600,
        intervals={"steps": 900},
        priorities={"steps": 1, "sleep": 5},
    )


@pytest.fixture
def source() -> FakePlatformSource:
    return FakePlatformSource()


@pytest.fixture
def bucket_store() -> InMemoryBucketStore:
    return InMemoryBucketStore()


@pytest.fixture
def cache(bucket_store: InMemoryBucketStore) -> BucketCache:
    return BucketCache(bucket_store)


@pytest.fixture
def cursors() -> InMemoryCursorStore:
    return InMemoryCursorStore()


@pytest.fixture
def engine(
    source: FakePlatformSource,
    cache: BucketCache,
    cursors: InMemoryCursorStore,
    engine_config: EngineConfig,
) -> SyncEngine:
    return SyncEngine(
        MetricType.STEPS, source, cache, cursors, config=engine_config, clock=lambda: NOW, tz=UTC
    )


# ---------------------------------------------------------------------------
# Mock asyncpg pool
# ---------------------------------------------------------------------------


class AsyncContext:
    """Minimal async context manager yielding ``value``."""

    def __init__(self, value: object = None) -> None:
        self.value = value

    async def __aenter__(self) -> object:
        return self.value

    async def __aexit__(self, *exc_info: object) -> bool:
        return False


@pytest.fixture
def mock_conn() -> MagicMock:
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="INSERT 0 1")
    conn.executemany = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)
    conn.transaction = MagicMock(return_value=AsyncContext())
    return conn


@pytest.fixture
def mock_pool(mock_conn: MagicMock) -> MagicMock:
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=AsyncContext(mock_conn))
    return pool


__all__ = [
    "NOW",
    "TODAY",
    "UTC",
    "FakePlatformSource",
    "SourceError",
    "bucket",
    "hour",
    "seed_records",
    "snapshot",
]
