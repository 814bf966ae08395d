"""In-memory service metrics.

Calls run on a single event loop, so plain dicts are safe without locking.
"""

import time

_start_time = time.monotonic()

_metrics: dict = {
    "access_denials": 0,
    "queries": {},
    "caches": {},
}


def record_query(loader_name: str, duration_ms: float, rows: int) -> None:
    """Record one SQL round-trip issued by a loader."""
    q = _metrics["queries"].setdefault(loader_name, {
        "executions": 0,
        "rows": 0,
        "total_duration_ms": 0.0,
    })
    q["executions"] += 1
    q["rows"] += rows
    q["total_duration_ms"] += duration_ms


def record_cache_hit(cache_name: str, count: int = 1) -> None:
    _cache_stats(cache_name)["hits"] += count


def record_cache_miss(cache_name: str, count: int = 1) -> None:
    _cache_stats(cache_name)["misses"] += count


def record_access_denied(count: int = 1) -> None:
    _metrics["access_denials"] += count


def _cache_stats(cache_name: str) -> dict:
    return _metrics["caches"].setdefault(cache_name, {"hits": 0, "misses": 0})


def get_metrics() -> dict:
    """Return a snapshot of current metrics."""
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "access_denials": _metrics["access_denials"],
        "queries": {name: dict(stats) for name, stats in _metrics["queries"].items()},
        "caches": {name: dict(stats) for name, stats in _metrics["caches"].items()},
    }


def reset_metrics() -> None:
    """Zero all counters. Used by tests."""
    _metrics["access_denials"] = 0
    _metrics["queries"].clear()
    _metrics["caches"].clear()
