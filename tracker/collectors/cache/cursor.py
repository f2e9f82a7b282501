"""Change-token persistence.

One scalar per metric type: the token to resume incremental sync from, or
nothing if the metric has never completed an initial sync.  Each write is a
single statement, so a crash leaves either the old token or the new one.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import asyncpg

from tracker.collectors.base import MetricType, utc_now
from tracker.collectors.cache.store import DB_ERRORS, StoreError
from tracker.services.postgres import build_upsert_query, transaction

logger = logging.getLogger("tracker.collectors.cache.cursor")


class CursorStore(ABC):
    @abstractmethod
    async def load(self, metric: MetricType) -> str | None:
        """Return the saved token, or None if never synced."""

    @abstractmethod
    async def save(self, metric: MetricType, token: str) -> None:
        ...

    @abstractmethod
    async def clear(self, metric: MetricType) -> None:
        ...


class InMemoryCursorStore(CursorStore):
    def __init__(self) -> None:
        self._tokens: dict[MetricType, str] = {}

    async def load(self, metric: MetricType) -> str | None:
        return self._tokens.get(metric)

    async def save(self, metric: MetricType, token: str) -> None:
        self._tokens[metric] = token

    async def clear(self, metric: MetricType) -> None:
        self._tokens.pop(metric, None)


class PostgresCursorStore(CursorStore):
    """Tokens in a ``sync_cursors`` table keyed by metric type."""

    def __init__(self, pool: asyncpg.Pool | None = None, table: str = "sync_cursors") -> None:
        self._pool = pool
        self._table = table
        self._upsert_sql = build_upsert_query(
            table, ["metric_type", "token", "updated_at"], ["metric_type"]
        )

    async def ensure_schema(self) -> None:
        await self._run(
            "execute",
            f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                metric_type TEXT PRIMARY KEY,
                token       TEXT NOT NULL,
                updated_at  TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """,
        )

    async def load(self, metric: MetricType) -> str | None:
        return await self._run(
            "fetchval",
            f"SELECT token FROM {self._table} WHERE metric_type = $1",
            metric.value,
        )

    async def save(self, metric: MetricType, token: str) -> None:
        await self._run("execute", self._upsert_sql, metric.value, token, utc_now())
        logger.debug("Saved %s cursor", metric.value)

    async def clear(self, metric: MetricType) -> None:
        await self._run(
            "execute", f"DELETE FROM {self._table} WHERE metric_type = $1", metric.value
        )

    async def _run(self, method: str, query: str, *args):
        try:
            async with transaction(self._pool) as conn:
                return await getattr(conn, method)(query, *args)
        except DB_ERRORS as exc:
            raise StoreError(f"Cursor {method} on {self._table} failed: {exc}") from exc
