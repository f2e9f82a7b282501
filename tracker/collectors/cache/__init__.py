"""Local bucket cache for collected metrics.

Modules:
    store        — BucketStore backends (in-memory, Postgres)
    cursor       — Change-token persistence (in-memory, Postgres)
    bucket_cache — BucketCache and live range subscriptions
"""

from tracker.collectors.cache.bucket_cache import BucketCache, Subscription
from tracker.collectors.cache.cursor import (
    CursorStore,
    InMemoryCursorStore,
    PostgresCursorStore,
)
from tracker.collectors.cache.store import (
    BucketStore,
    InMemoryBucketStore,
    PostgresBucketStore,
    StoreError,
)

__all__ = [
    "BucketCache",
    "Subscription",
    "BucketStore",
    "InMemoryBucketStore",
    "PostgresBucketStore",
    "StoreError",
    "CursorStore",
    "InMemoryCursorStore",
    "PostgresCursorStore",
]
