"""Bucket store backends.

A store is the durable keyed table of hour buckets behind ``BucketCache``.
It only persists and queries; change notification lives in the cache.

Backends:
    InMemoryBucketStore — dict keyed by bucket start; tests and embedded use
    PostgresBucketStore — ``steps_hourly``-style table via asyncpg
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Sequence

import asyncpg

from tracker.collectors.base import HourBucket
from tracker.services.postgres import build_upsert_query, transaction

logger = logging.getLogger("tracker.collectors.cache.store")


# Driver failures wrapped in StoreError; InterfaceError covers a closed pool
DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class StoreError(Exception):
    """Raised when a store read or write fails."""


class BucketStore(ABC):
    """Keyed storage of hour buckets (key = ``start``)."""

    @abstractmethod
    async def upsert(self, buckets: Sequence[HourBucket]) -> None:
        """Insert or replace each bucket by key. The batch applies atomically."""

    @abstractmethod
    async def query(self, start: datetime, end: datetime) -> list[HourBucket]:
        """Return buckets lying inside ``[start, end)``, ascending by start."""

    @abstractmethod
    async def delete_before(self, threshold: datetime) -> list[HourBucket]:
        """Remove buckets with ``start < threshold`` and return them."""


class InMemoryBucketStore(BucketStore):
    """Process-local store.

    Each call completes without yielding to the event loop, so a concurrent
    reader never sees half of a batch.
    """

    def __init__(self) -> None:
        self._rows: dict[datetime, HourBucket] = {}

    async def upsert(self, buckets: Sequence[HourBucket]) -> None:
        self._rows.update({b.start: b for b in buckets})

    async def query(self, start: datetime, end: datetime) -> list[HourBucket]:
        return sorted(
            (b for b in self._rows.values() if b.within(start, end)),
            key=lambda b: b.start,
        )

    async def delete_before(self, threshold: datetime) -> list[HourBucket]:
        doomed = [b for key, b in self._rows.items() if key < threshold]
        for bucket in doomed:
            del self._rows[bucket.start]
        return doomed

    def __len__(self) -> int:
        return len(self._rows)


_COLUMNS = ["hour_start", "hour_end", "count", "zone_offset", "synced_at"]


class PostgresBucketStore(BucketStore):
    """Hour buckets in a Postgres table, one row per ``hour_start``.

    Usage::

        store = PostgresBucketStore(pool, table="steps_hourly")
        await store.ensure_schema()
    """

    def __init__(self, pool: asyncpg.Pool | None = None, table: str = "steps_hourly") -> None:
        self._pool = pool
        self._table = table
        self._upsert_sql = build_upsert_query(table, _COLUMNS, ["hour_start"])

    async def ensure_schema(self) -> None:
        await self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                hour_start  TIMESTAMPTZ PRIMARY KEY,
                hour_end    TIMESTAMPTZ NOT NULL,
                count       BIGINT NOT NULL CHECK (count >= 0),
                zone_offset TEXT NOT NULL,
                synced_at   TIMESTAMPTZ NOT NULL
            )
            """
        )

    async def upsert(self, buckets: Sequence[HourBucket]) -> None:
        if not buckets:
            return
        rows = [
            (b.start, b.end, b.count, b.source_zone_offset, b.synced_at) for b in buckets
        ]
        try:
            async with transaction(self._pool) as conn:
                await conn.executemany(self._upsert_sql, rows)
        except DB_ERRORS as exc:
            raise StoreError(f"Upsert into {self._table} failed: {exc}") from exc
        logger.debug("Upserted %d rows into %s", len(rows), self._table)

    async def query(self, start: datetime, end: datetime) -> list[HourBucket]:
        records = await self._fetch(
            f"SELECT * FROM {self._table} "
            "WHERE hour_start >= $1 AND hour_end <= $2 ORDER BY hour_start ASC",
            start,
            end,
        )
        return [_to_bucket(r) for r in records]

    async def delete_before(self, threshold: datetime) -> list[HourBucket]:
        records = await self._fetch(
            f"DELETE FROM {self._table} WHERE hour_start < $1 RETURNING *",
            threshold,
        )
        return [_to_bucket(r) for r in records]

    async def _fetch(self, query: str, *args) -> list[asyncpg.Record]:
        try:
            async with transaction(self._pool) as conn:
                return await conn.fetch(query, *args)
        except DB_ERRORS as exc:
            raise StoreError(f"Query on {self._table} failed: {exc}") from exc

    async def _execute(self, query: str, *args) -> str:
        try:
            async with transaction(self._pool) as conn:
                return await conn.execute(query, *args)
        except DB_ERRORS as exc:
            raise StoreError(f"Statement on {self._table} failed: {exc}") from exc


def _to_bucket(record) -> HourBucket:
    return HourBucket(
        start=record["hour_start"],
        end=record["hour_end"],
        count=int(record["count"]),
        source_zone_offset=record["zone_offset"],
        synced_at=record["synced_at"],
    )
