"""Shared query helpers for the batched loaders."""

import logging
import time
from collections.abc import Callable, Hashable, Iterable, Sequence
from typing import Any, TypeVar

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from .metrics import record_query

logger = logging.getLogger(__name__)

# Keeps each ANY(%s) array well below server-side parameter/packet limits
DEFAULT_PARTITION_SIZE = 20000

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of at most ``size`` elements."""
    if size <= 0:
        raise ValueError(f"Partition size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def fetch_all(
    conn: psycopg.AsyncConnection[Any],
    query: str | sql.Composable,
    params: Sequence[Any] | dict[str, Any] | None,
    *,
    loader: str,
) -> list[dict[str, Any]]:
    """Run ``query`` with a dict_row cursor and record timing under ``loader``."""
    t0 = time.monotonic()
    async with conn.cursor(row_factory=dict_row) as cur:
        await cur.execute(query, params)
        rows = await cur.fetchall()
    duration_ms = (time.monotonic() - t0) * 1000
    record_query(loader, duration_ms, len(rows))
    logger.debug(
        "%s returned %d rows in %.1fms", loader, len(rows), duration_ms,
        extra={"hmis_loader": loader, "hmis_rows": len(rows), "hmis_duration_ms": duration_ms},
    )
    return rows


def group_rows(
    rows: Iterable[dict[str, Any]],
    key: str,
    mapper: Callable[[dict[str, Any]], T],
) -> dict[Any, list[T]]:
    """Group mapped rows by the value of ``key``, preserving row order."""
    grouped: dict[Any, list[T]] = {}
    for row in rows:
        grouped.setdefault(row[key], []).append(mapper(row))
    return grouped


def dedupe_by(items: Iterable[T], key: Callable[[T], K]) -> list[T]:
    """Drop later items whose key was already seen."""
    seen: dict[K, T] = {}
    for item in items:
        seen.setdefault(key(item), item)
    return list(seen.values())
