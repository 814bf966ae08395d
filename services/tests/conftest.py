"""Shared fakes for the loader tests.

FakeConnection mimics the slice of psycopg.AsyncConnection the loaders use:
``conn.cursor(row_factory=...)`` as an async context manager whose
``execute`` is answered by a responder callable and whose ``fetchall`` /
``fetchone`` return the answered rows.
"""

from collections.abc import Callable
from typing import Any

import pytest
from psycopg import sql

from hmis_services.metrics import reset_metrics


def sql_text(query: Any) -> str:
    """Render str/SQL/Composed/Identifier to plain text without a connection."""
    if isinstance(query, str):
        return query
    if isinstance(query, sql.Identifier):
        return ".".join(f'"{part}"' for part in query._obj)
    if isinstance(query, sql.SQL):
        return query._obj
    if isinstance(query, sql.Composed):
        return "".join(sql_text(part) for part in query._obj)
    if isinstance(query, sql.Literal):
        return repr(query._obj)
    return str(query)


Responder = Callable[[str, Any], list[dict[str, Any]]]


class _FakeCursor:
    def __init__(self, conn: "FakeConnection"):
        self._conn = conn
        self._rows: list[dict[str, Any]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def execute(self, query, params=None):
        text = sql_text(query)
        self._conn.executed.append((text, params))
        self._rows = list(self._conn.responder(text, params))

    async def fetchall(self):
        return list(self._rows)

    async def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeConnection:
    def __init__(self, responder: Responder):
        self.responder = responder
        self.executed: list[tuple[str, Any]] = []

    def cursor(self, row_factory=None):
        return _FakeCursor(self)

    def queries_containing(self, fragment: str) -> list[tuple[str, Any]]:
        return [(text, params) for text, params in self.executed if fragment in text]


@pytest.fixture
def make_conn() -> Callable[[Responder], FakeConnection]:
    return FakeConnection


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()
