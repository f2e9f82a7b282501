"""Base classes and canonical data models for metric collectors.

Every metric module subclasses DataCollector (or GranularDataCollector when it
supports range + granularity reads) and exchanges the types defined here.
These types are shared by the sync engine, the bucket cache, the aggregator
and the registry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tracker.collectors.cache.bucket_cache import Subscription


BUCKET_DURATION = timedelta(hours=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MetricType(str, Enum):
    """Metric kinds a collector module can provide."""

    STEPS = "steps"
    SLEEP = "sleep"


class Granularity(str, Enum):
    """Aggregation level for read-side points."""

    HOURLY = "hourly"
    DAILY = "daily"


class PermissionState(str, Enum):
    """Consent state reported by the platform for a metric.

    UNAVAILABLE means the platform capability itself is absent on this
    device / OS version, as opposed to the user declining access.
    """

    GRANTED = "granted"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"


class SyncErrorKind(str, Enum):
    SOURCE_UNAVAILABLE = "source_unavailable"
    FETCH_FAILED = "fetch_failed"
    STORE_FAILED = "store_failed"


# ---------------------------------------------------------------------------
# Cached + read-side models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HourBucket:
    """One cached hour of a metric, keyed by ``start``.

    Attributes:
        start:              UTC instant the bucket begins (hour-aligned).
        end:                UTC instant the bucket ends; ``start + 1h`` except
                            for a shorter trailing bucket at a range edge.
        count:              Summed metric count for the hour.
        source_zone_offset: Zone offset the platform recorded, e.g. "+02:00".
        synced_at:          UTC instant the bucket was written.
    """

    start: datetime
    end: datetime
    count: int
    source_zone_offset: str = "+00:00"
    synced_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"HourBucket count must be non-negative, got {self.count}")
        if self.end <= self.start:
            raise ValueError(f"HourBucket end {self.end} is not after start {self.start}")

    def within(self, start: datetime, end: datetime) -> bool:
        """Return True if this bucket lies entirely inside ``[start, end)``."""
        return start <= self.start and self.end <= end


@dataclass(frozen=True)
class MetricPoint:
    """Public read-side value: one hourly or daily aggregate."""

    timestamp: datetime
    count: int


# ---------------------------------------------------------------------------
# Sync outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncError:
    kind: SyncErrorKind
    message: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}" if self.message else self.kind.value


@dataclass
class SyncResult:
    """Outcome of one sync pass.

    A failed pass is reported here rather than raised, so a scheduler can
    decide between success and retry without exception handling.

    Attributes:
        metric_type:     Metric the pass ran for.
        ok:              True if the pass completed and the cursor advanced.
        error:           Failure detail when ``ok`` is False.
        mode:            'initial' or 'incremental'.
        buckets_written: Buckets upserted during the pass (including an aborted one).
        pages_read:      Change-feed pages consumed.
        windows_fetched: Aggregate windows re-fetched from the source.
        buckets_pruned:  Buckets removed by retention.
        started_at:      UTC start of the pass.
        finished_at:     UTC end of the pass.
    """

    metric_type: MetricType
    ok: bool = True
    error: SyncError | None = None
    mode: str = "incremental"
    buckets_written: int = 0
    pages_read: int = 0
    windows_fetched: int = 0
    buckets_pruned: int = 0
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def status(self) -> str:
        return "success" if self.ok else "error"


# ---------------------------------------------------------------------------
# Collector capabilities
# ---------------------------------------------------------------------------


class DataCollector(ABC):
    """Basic collector capability: permission check, sync, live view.

    Subclasses must implement:
        - check_permissions()
        - sync()
        - observe()
    """

    #: Metric this collector serves.
    METRIC_TYPE: MetricType

    @abstractmethod
    async def check_permissions(self) -> PermissionState:
        """Return the platform consent state for this collector's metric."""

    @abstractmethod
    async def sync(self) -> SyncResult:
        """Run one convergent synchronization pass."""

    @abstractmethod
    async def observe(self) -> Subscription:
        """Subscribe to live hourly points for the current local day."""


class GranularDataCollector(DataCollector):
    """Collector that also serves range reads at a chosen granularity."""

    @abstractmethod
    async def get(
        self, start: datetime, end: datetime, granularity: Granularity
    ) -> list[MetricPoint]:
        """Return cached points for ``[start, end)`` at ``granularity``.

        Args:
            start:       Inclusive lower bound (aware datetime).
            end:         Exclusive upper bound (aware datetime).
            granularity: HOURLY or DAILY.

        Returns:
            Points sorted ascending by timestamp.
        """

    @abstractmethod
    async def observe(self, granularity: Granularity = Granularity.HOURLY) -> Subscription:
        """Subscribe to live points for the current local day at ``granularity``."""


def floor_hour(instant: datetime) -> datetime:
    """Truncate an aware datetime down to the start of its UTC hour."""
    return instant.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
