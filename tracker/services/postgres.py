"""asyncpg pool lifecycle and transactional connections.

The durable bucket and cursor stores share one pool.  Every write runs inside
a transaction so a batch of bucket upserts is applied all-or-nothing.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg

from tracker.config import Settings, get_settings

logger = logging.getLogger("tracker.db")

# Module-level connection pool, initialized once at host startup
_pool: asyncpg.Pool | None = None


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at startup."""
    global _pool
    s = settings or get_settings()
    if not s.database_url:
        raise RuntimeError("database_url is not configured")
    _pool = await asyncpg.create_pool(
        s.database_url,
        min_size=s.db_pool_min_size,
        max_size=s.db_pool_max_size,
        command_timeout=30,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)",
        s.db_pool_min_size,
        s.db_pool_max_size,
    )
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized — call init_pool() first")
    return _pool


@asynccontextmanager
async def transaction(pool: asyncpg.Pool | None = None) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection and open a transaction on it.

    Usage::

        async with transaction(pool) as conn:
            await conn.executemany(query, rows)
    """
    async with (pool or get_pool()).acquire() as conn:
        async with conn.transaction():
            yield conn


def build_upsert_query(
    table: str,
    columns: list[str],
    conflict_columns: list[str],
    update_columns: list[str] | None = None,
) -> str:
    """Build an INSERT ... ON CONFLICT DO UPDATE (upsert) query.

    On conflict the non-key columns are overwritten, which gives
    last-write-wins semantics per key.

    Args:
        table:            Target table name.
        columns:          All columns to insert.
        conflict_columns: Columns that define the UNIQUE constraint.
        update_columns:   Columns to update on conflict (defaults to non-key columns).

    Returns:
        Parameterized SQL string.
    """
    if update_columns is None:
        update_columns = [c for c in columns if c not in conflict_columns]

    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    col_list = ", ".join(columns)
    conflict_target = ", ".join(conflict_columns)

    if update_columns:
        update_set = ", ".join(f"{col} = EXCLUDED.{col}" for col in update_columns)
        do_clause = f"DO UPDATE SET {update_set}"
    else:
        do_clause = "DO NOTHING"

    return (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict_target}) {do_clause}"
    )
