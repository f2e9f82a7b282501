"""Boundary between collectors and a periodic job scheduler.

``SyncWorker`` is the unit of recurring work a host scheduler runs for one
collector:

1. Check platform permission; anything but GRANTED is a successful no-op,
   and a failed check is retried
2. Run ``collector.sync()``
3. Map the outcome to SUCCESS or RETRY

``SyncScheduler`` is a small in-process driver for hosts without their own
job system: it queues workers per metric type, runs them with bounded
concurrency, and decides when a metric is due again.  Running the same
metric twice at once is safe because the sync engine is single-flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

from tracker.collectors.base import DataCollector, MetricType, PermissionState, utc_now
from tracker.collectors.config_loader import SchedulerConfig, get_sync_config
from tracker.collectors.registry import CollectorRegistry

logger = logging.getLogger("tracker.collectors.sync.scheduler")


class WorkResult(str, Enum):
    SUCCESS = "success"
    RETRY = "retry"


class SyncWorker:
    """Permission-gated sync for one collector."""

    def __init__(self, collector: DataCollector) -> None:
        self._collector = collector

    async def do_work(self) -> WorkResult:
        metric = self._collector.METRIC_TYPE.value
        try:
            permission = await self._collector.check_permissions()
        except Exception as exc:
            logger.warning("%s permission check failed, will retry: %s", metric, exc)
            return WorkResult.RETRY
        if permission is not PermissionState.GRANTED:
            logger.info("%s sync skipped: permission %s", metric, permission.value)
            return WorkResult.SUCCESS

        result = await self._collector.sync()
        if result.ok:
            return WorkResult.SUCCESS
        logger.warning("%s sync will be retried: %s", metric, result.error)
        return WorkResult.RETRY


@dataclass
class SyncJob:
    """A queued sync request for one metric type.

    Attributes:
        metric_type: Metric to sync.
        priority:    Lower = higher priority.
        created_at:  When the job was queued.
    """

    metric_type: MetricType
    priority: int = 5
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class JobOutcome:
    metric_type: MetricType
    result: WorkResult
    finished_at: datetime = field(default_factory=utc_now)


class SyncScheduler:
    """Queue and execute collector sync jobs.

    Usage::

        scheduler = SyncScheduler(registry)
        scheduler.enqueue_due()
        outcomes = await scheduler.run_all()
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or get_sync_config().scheduler
        self._clock = clock or utc_now
        self._queue: list[SyncJob] = []
        self._last_success: dict[MetricType, datetime] = {}

    def enqueue(self, metric_type: MetricType, priority: int | None = None) -> SyncJob:
        """Add a job; the queue stays sorted by priority (ascending).

        Raises:
            CollectorNotRegisteredError: If no collector serves ``metric_type``.
        """
        self._registry.get_collector_or_raise(metric_type)
        if priority is None:
            priority = self._config.priority(metric_type.value)
        job = SyncJob(metric_type=metric_type, priority=priority, created_at=self._clock())
        self._queue.append(job)
        self._queue.sort(key=lambda j: j.priority)
        logger.debug("Enqueued sync job: %s (priority=%d)", metric_type.value, priority)
        return job

    def enqueue_due(self) -> list[SyncJob]:
        """Enqueue every registered metric whose interval has elapsed."""
        return [
            self.enqueue(metric)
            for metric in sorted(self._registry.get_available_types(), key=lambda m: m.value)
            if self.should_sync(metric, self._last_success.get(metric))
        ]

    @property
    def pending(self) -> list[SyncJob]:
        return list(self._queue)

    def last_success(self, metric_type: MetricType) -> datetime | None:
        return self._last_success.get(metric_type)

    async def run_all(self) -> list[JobOutcome]:
        """Execute all queued jobs with ``max_concurrent`` parallelism."""
        if not self._queue:
            logger.debug("SyncScheduler: no jobs in queue")
            return []

        jobs, self._queue = self._queue, []
        logger.info("SyncScheduler: running %d jobs", len(jobs))
        semaphore = asyncio.Semaphore(self._config.max_concurrent)
        results = await asyncio.gather(
            *(self._run_job(job, semaphore) for job in jobs), return_exceptions=True
        )

        outcomes: list[JobOutcome] = []
        for job, r in zip(jobs, results):
            if isinstance(r, Exception):
                logger.error("Sync job failed with exception: %s", r)
                outcomes.append(JobOutcome(job.metric_type, WorkResult.RETRY, self._clock()))
            else:
                outcomes.append(r)

        logger.info(
            "SyncScheduler: %d jobs complete, %d to retry",
            len(outcomes),
            sum(1 for o in outcomes if o.result is WorkResult.RETRY),
        )
        return outcomes

    async def _run_job(self, job: SyncJob, semaphore: asyncio.Semaphore) -> JobOutcome:
        async with semaphore:
            collector = self._registry.get_collector_or_raise(job.metric_type)
            result = await SyncWorker(collector).do_work()
            finished_at = self._clock()
            if result is WorkResult.SUCCESS:
                self._last_success[job.metric_type] = finished_at
            return JobOutcome(job.metric_type, result, finished_at)

    def get_interval(self, metric_type: MetricType) -> int:
        """Return the sync interval in seconds for a metric type."""
        return self._config.interval(metric_type.value)

    def should_sync(self, metric_type: MetricType, last_sync_at: datetime | None) -> bool:
        """Return True if a metric is due for a sync.

        Args:
            metric_type:  Metric to check.
            last_sync_at: UTC datetime of last successful sync (None = never).
        """
        if last_sync_at is None:
            return True
        elapsed = (self._clock() - last_sync_at).total_seconds()
        return elapsed >= self.get_interval(metric_type)
