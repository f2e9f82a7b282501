"""Bucket cache: keyed hour-bucket storage plus live range subscriptions.

Reads never wait on a sync pass.  Writes are applied to the backing store as
one batch and only then announced to subscribers, so a subscriber sees each
bucket either fully old or fully new.

Usage::

    cache = BucketCache(InMemoryBucketStore())
    await cache.upsert(buckets)

    async with await cache.subscribe(day_start, day_end) as sub:
        async for snapshot in sub:
            render(snapshot)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Sequence

from tracker.collectors.base import HourBucket
from tracker.collectors.cache.store import BucketStore

logger = logging.getLogger("tracker.collectors.cache")


class Subscription:
    """Live view of the buckets inside ``[start, end)``.

    The first item is the snapshot at subscribe time; each later item is a
    fresh snapshot taken after an upsert or delete that touched the range.
    Only the newest unread snapshot is held, so a consumer that falls behind
    receives the most recent one and memory stays bounded.  Snapshots are
    tagged with the cache write version they were read at; one older than
    what the subscriber already holds is dropped.
    ``transform``, if given, is applied to each snapshot as it is consumed.
    """

    def __init__(
        self,
        cache: BucketCache,
        start: datetime,
        end: datetime,
        transform: Callable[[list[HourBucket]], Any] | None = None,
    ) -> None:
        self.start = start
        self.end = end
        self._cache = cache
        self._transform = transform
        self._pending: list[HourBucket] | None = None
        self._version = -1
        self._ready = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def touches(self, buckets: Sequence[HourBucket]) -> bool:
        return any(b.within(self.start, self.end) for b in buckets)

    def _push(self, version: int, snapshot: list[HourBucket]) -> None:
        if self._closed or version < self._version:
            return
        self._version = version
        self._pending = snapshot
        self._ready.set()

    def close(self) -> None:
        """Stop receiving updates and end iteration."""
        if self._closed:
            return
        self._closed = True
        self._pending = None
        self._cache._detach(self)
        self._ready.set()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Any:
        while self._pending is None and not self._closed:
            self._ready.clear()
            await self._ready.wait()
        if self._closed:
            raise StopAsyncIteration
        item, self._pending = self._pending, None
        return self._transform(item) if self._transform else item

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class BucketCache:
    """Hour-bucket cache for one metric."""

    def __init__(self, store: BucketStore) -> None:
        self._store = store
        self._subscriptions: list[Subscription] = []
        # Bumped after every completed store write
        self._version = 0

    @property
    def store(self) -> BucketStore:
        return self._store

    async def upsert(self, buckets: Sequence[HourBucket]) -> None:
        """Replace each bucket by its start key (last write wins)."""
        if not buckets:
            return
        await self._store.upsert(buckets)
        self._version += 1
        await self._notify(buckets, self._version)

    async def query(self, start: datetime, end: datetime) -> list[HourBucket]:
        """Return buckets inside ``[start, end)``, ascending by start."""
        return await self._store.query(start, end)

    async def subscribe(
        self,
        start: datetime,
        end: datetime,
        transform: Callable[[list[HourBucket]], Any] | None = None,
    ) -> Subscription:
        """Open a live view over ``[start, end)`` primed with the current snapshot."""
        subscription = Subscription(self, start, end, transform)
        version = self._version
        self._subscriptions.append(subscription)
        subscription._push(version, await self._store.query(start, end))
        logger.debug("Subscription opened for [%s, %s)", start, end)
        return subscription

    async def delete_before(self, threshold: datetime) -> int:
        """Remove buckets with ``start < threshold``; return how many went."""
        deleted = await self._store.delete_before(threshold)
        if deleted:
            self._version += 1
            logger.info("Pruned %d buckets older than %s", len(deleted), threshold)
            await self._notify(deleted, self._version)
        return len(deleted)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def _notify(self, changed: Sequence[HourBucket], version: int) -> None:
        for subscription in list(self._subscriptions):
            if subscription.closed or not subscription.touches(changed):
                continue
            subscription._push(version, await self._store.query(subscription.start, subscription.end))
