"""Platform data source contract.

The platform health-data API binding lives outside this package.  The sync
engine talks to it only through ``PlatformSource``; bindings translate the
platform's own records into the plain types below.

A binding reports failures by raising:
    SourceUnavailableError — the platform capability is absent or unreachable
    SourceError            — any other fetch failure
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Protocol, runtime_checkable

from tracker.collectors.base import MetricType, PermissionState


class SourceError(Exception):
    """Raised by a platform binding when a fetch fails."""


class SourceUnavailableError(SourceError):
    """Raised when the platform capability is not present or not reachable."""


class ChangeKind(str, Enum):
    UPSERT = "upsert"
    DELETION = "deletion"


@dataclass(frozen=True)
class AggregateBucket:
    """One time slice of a platform aggregate response.

    ``zone_offset`` is None when the platform did not record one.
    """

    start: datetime
    end: datetime
    count: int
    zone_offset: str | None = None


@dataclass(frozen=True)
class ChangeEvent:
    """One entry of the change feed.

    Only UPSERT events carry a record time range; the engine ignores the rest.
    """

    kind: ChangeKind
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class ChangesPage:
    events: list[ChangeEvent] = field(default_factory=list)
    next_token: str = ""
    has_more: bool = False


@runtime_checkable
class PlatformSource(Protocol):
    """What the sync engine needs from the platform health-data API."""

    async def aggregate(
        self,
        metric: MetricType,
        start: datetime,
        end: datetime,
        bucket: timedelta,
    ) -> list[AggregateBucket]:
        """Return ``bucket``-sized aggregates covering ``[start, end)``, ascending."""
        ...

    async def current_change_token(self, metrics: Iterable[MetricType]) -> str:
        """Return a token meaning "changes from now on" for ``metrics``."""
        ...

    async def changes_since(self, token: str) -> ChangesPage:
        """Return the next page of changes after ``token``."""
        ...

    async def permission_state(self, metric: MetricType) -> PermissionState:
        ...
