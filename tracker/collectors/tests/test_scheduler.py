"""Tests for SyncWorker outcome mapping and the in-process SyncScheduler."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from tracker.collectors.base import (
    DataCollector,
    MetricType,
    PermissionState,
    SyncError,
    SyncErrorKind,
    SyncResult,
)
from tracker.collectors.cache import BucketCache, InMemoryBucketStore, InMemoryCursorStore
from tracker.collectors.config_loader import EngineConfig, SchedulerConfig
from tracker.collectors.registry import CollectorNotRegisteredError, CollectorRegistry
from tracker.collectors.source import SourceError
from tracker.collectors.steps import StepsCollector
from tracker.collectors.sync.scheduler import SyncScheduler, SyncWorker, WorkResult
from tracker.collectors.tests.conftest import NOW, UTC, FakePlatformSource, hour


def stub_collector(
    metric: MetricType = MetricType.STEPS,
    permission: PermissionState = PermissionState.GRANTED,
    ok: bool = True,
) -> MagicMock:
    collector = MagicMock(spec=DataCollector)
    collector.METRIC_TYPE = metric
    collector.check_permissions = AsyncMock(return_value=permission)
    error = None if ok else SyncError(SyncErrorKind.FETCH_FAILED, "HTTP 503")
    collector.sync = AsyncMock(return_value=SyncResult(metric_type=metric, ok=ok, error=error))
    return collector


class Clock:
    def __init__(self, now=NOW) -> None:
        self.now = now

    def __call__(self):
        return self.now


# ---------------------------------------------------------------------------
# SyncWorker
# ---------------------------------------------------------------------------


class TestSyncWorker:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        collector = stub_collector()
        assert await SyncWorker(collector).do_work() is WorkResult.SUCCESS
        collector.sync.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_maps_to_retry(self) -> None:
        assert await SyncWorker(stub_collector(ok=False)).do_work() is WorkResult.RETRY

    @pytest.mark.parametrize("permission", [PermissionState.DENIED, PermissionState.UNAVAILABLE])
    @pytest.mark.asyncio
    async def test_without_permission_is_a_successful_noop(self, permission) -> None:
        collector = stub_collector(permission=permission)
        assert await SyncWorker(collector).do_work() is WorkResult.SUCCESS
        collector.sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_permission_check_failure_maps_to_retry(self) -> None:
        source = FakePlatformSource()
        source.failures["permission_state"] = SourceError("binder died")
        collector = StepsCollector(
            source,
            BucketCache(InMemoryBucketStore()),
            InMemoryCursorStore(),
            config=EngineConfig(),
            clock=lambda: NOW,
            tz=UTC,
        )

        assert await SyncWorker(collector).do_work() is WorkResult.RETRY
        assert source.calls["aggregate"] == 0


# ---------------------------------------------------------------------------
# SyncScheduler
# ---------------------------------------------------------------------------


class TestSyncScheduler:
    def setup_method(self) -> None:
        self.registry = CollectorRegistry()
        self.clock = Clock()

    def make_scheduler(self, scheduler_config: SchedulerConfig) -> SyncScheduler:
        return SyncScheduler(self.registry, config=scheduler_config, clock=self.clock)

    def test_enqueue_sorted_by_priority(self, scheduler_config) -> None:
        self.registry.register(MetricType.STEPS, stub_collector())
        self.registry.register(MetricType.SLEEP, stub_collector(MetricType.SLEEP))
        scheduler = self.make_scheduler(scheduler_config)

        scheduler.enqueue(MetricType.SLEEP)
        scheduler.enqueue(MetricType.STEPS)
        assert [(j.metric_type, j.priority) for j in scheduler.pending] == [
            (MetricType.STEPS, 1),
            (MetricType.SLEEP, 5),
        ]

    def test_enqueue_unregistered_metric(self, scheduler_config) -> None:
        with pytest.raises(CollectorNotRegisteredError):
            self.make_scheduler(scheduler_config).enqueue(MetricType.SLEEP)

    def test_should_sync_uses_metric_interval(self, scheduler_config) -> None:
        scheduler = self.make_scheduler(scheduler_config)
        assert scheduler.get_interval(MetricType.STEPS) == 900
        assert scheduler.get_interval(MetricType.SLEEP) == 3600
        assert scheduler.should_sync(MetricType.STEPS, None)
        assert not scheduler.should_sync(MetricType.STEPS, NOW - timedelta(minutes=10))
        assert scheduler.should_sync(MetricType.STEPS, NOW - timedelta(minutes=15))

    @pytest.mark.asyncio
    async def test_run_all_records_outcomes(self, scheduler_config) -> None:
        self.registry.register(MetricType.STEPS, stub_collector())
        self.registry.register(MetricType.SLEEP, stub_collector(MetricType.SLEEP, ok=False))
        scheduler = self.make_scheduler(scheduler_config)

        assert len(scheduler.enqueue_due()) == 2
        outcomes = {o.metric_type: o.result for o in await scheduler.run_all()}

        assert outcomes == {MetricType.STEPS: WorkResult.SUCCESS, MetricType.SLEEP: WorkResult.RETRY}
        assert scheduler.pending == []
        assert scheduler.last_success(MetricType.STEPS) == NOW
        assert scheduler.last_success(MetricType.SLEEP) is None

    @pytest.mark.asyncio
    async def test_enqueue_due_respects_interval(self, scheduler_config) -> None:
        self.registry.register(MetricType.STEPS, stub_collector())
        scheduler = self.make_scheduler(scheduler_config)
        scheduler.enqueue_due()
        await scheduler.run_all()

        self.clock.now = NOW + timedelta(minutes=5)
        assert scheduler.enqueue_due() == []
        self.clock.now = NOW + timedelta(minutes=15)
        assert [j.metric_type for j in scheduler.enqueue_due()] == [MetricType.STEPS]

    @pytest.mark.asyncio
    async def test_run_all_empty(self, scheduler_config) -> None:
        assert await self.make_scheduler(scheduler_config).run_all() == []

    @pytest.mark.asyncio
    async def test_duplicate_jobs_share_one_pass(self, scheduler_config) -> None:
        source = FakePlatformSource()
        source.add_record(hour(14, 9), 100, notify=False)
        collector = StepsCollector(
            source,
            BucketCache(InMemoryBucketStore()),
            InMemoryCursorStore(),
            config=EngineConfig(),
            clock=self.clock,
            tz=UTC,
        )
        self.registry.register(MetricType.STEPS, collector)
        scheduler = self.make_scheduler(scheduler_config)
        scheduler.enqueue(MetricType.STEPS)
        scheduler.enqueue(MetricType.STEPS)

        outcomes = await scheduler.run_all()

        assert [o.result for o in outcomes] == [WorkResult.SUCCESS, WorkResult.SUCCESS]
        assert source.calls["aggregate"] == 1

    @pytest.mark.asyncio
    async def test_one_crashing_job_does_not_sink_the_batch(self, scheduler_config, caplog) -> None:
        crashing = stub_collector(MetricType.SLEEP)
        crashing.sync = AsyncMock(side_effect=RuntimeError("collector exploded"))
        self.registry.register(MetricType.STEPS, stub_collector())
        self.registry.register(MetricType.SLEEP, crashing)
        scheduler = self.make_scheduler(scheduler_config)
        scheduler.enqueue_due()

        with caplog.at_level("ERROR", logger="tracker.collectors.sync.scheduler"):
            outcomes = {o.metric_type: o.result for o in await scheduler.run_all()}

        assert outcomes == {MetricType.STEPS: WorkResult.SUCCESS, MetricType.SLEEP: WorkResult.RETRY}
        assert "collector exploded" in caplog.text
        assert scheduler.last_success(MetricType.STEPS) == NOW
        assert scheduler.last_success(MetricType.SLEEP) is None
