"""Map cached hour buckets to read-side points.

Pure functions — no I/O, no state.  Daily grouping uses the zone that is
active when the aggregation runs, not the ``source_zone_offset`` stored on
each bucket, so an hour recorded under one offset can land on a different
local day after a zone change or around a DST transition.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone, tzinfo
from typing import Iterable

from tracker.collectors.base import Granularity, HourBucket, MetricPoint


def aggregate_hourly(buckets: Iterable[HourBucket]) -> list[MetricPoint]:
    """One point per bucket, in input order."""
    return [MetricPoint(timestamp=b.start, count=b.count) for b in buckets]


def local_day_start(instant: datetime, tz: tzinfo | None = None) -> datetime:
    """Return the UTC instant of local midnight for the day containing ``instant``.

    Args:
        instant: Aware datetime.
        tz:      Zone to use. None means the system local zone at call time.
    """
    local = instant.astimezone(tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if tz is None:
        # astimezone() attached a fixed offset for ``instant``; re-resolve the
        # offset that applies at midnight itself.
        midnight = midnight.replace(tzinfo=None).astimezone()
    return midnight.astimezone(timezone.utc)


def aggregate_daily(
    buckets: Iterable[HourBucket], tz: tzinfo | None = None
) -> list[MetricPoint]:
    """Sum buckets per local calendar day.

    Args:
        buckets: Hour buckets in any order.
        tz:      Zone defining day boundaries (None = system local zone).

    Returns:
        One point per day, keyed by the day's start instant (UTC), ascending.
    """
    totals: dict[datetime, int] = defaultdict(int)
    for bucket in buckets:
        totals[local_day_start(bucket.start, tz)] += bucket.count
    return [MetricPoint(timestamp=day, count=total) for day, total in sorted(totals.items())]


def aggregate(
    buckets: Iterable[HourBucket],
    granularity: Granularity,
    tz: tzinfo | None = None,
) -> list[MetricPoint]:
    granularity = Granularity(granularity)
    if granularity is Granularity.HOURLY:
        return aggregate_hourly(buckets)
    if granularity is Granularity.DAILY:
        return aggregate_daily(buckets, tz)
    raise ValueError(f"Unsupported granularity: {granularity!r}")
