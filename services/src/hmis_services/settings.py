"""System settings read from the systemsetting table."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

import psycopg
from cachetools import TTLCache
from psycopg.rows import dict_row

from .metrics import record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)

SETTINGS_CACHE = "system_settings"


class SettingKey(Enum):
    CALENDAR = ("keyCalendar", "iso8601")
    DATE_FORMAT = ("keyDateFormat", "yyyy-MM-dd")

    @property
    def setting_name(self) -> str:
        return self.value[0]

    @property
    def default(self) -> str:
        return self.value[1]


def _decode(raw: Any) -> Any:
    """Stored values are JSON text; tolerate plain strings written by older clients."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


class SystemSettingManager:
    def __init__(self, *, cache_ttl_seconds: float = 60.0) -> None:
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=256, ttl=cache_ttl_seconds)

    async def get_setting(
        self, conn: psycopg.AsyncConnection[Any], key: SettingKey
    ) -> Any | None:
        name = key.setting_name
        if name in self._cache:
            record_cache_hit(SETTINGS_CACHE)
            return self._cache[name]

        record_cache_miss(SETTINGS_CACHE)
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                "SELECT value FROM systemsetting WHERE name = %s",
                (name,),
            )
            row = await cur.fetchone()

        value = _decode(row["value"]) if row else None
        self._cache[name] = value
        return value

    async def get_string_setting(
        self, conn: psycopg.AsyncConnection[Any], key: SettingKey
    ) -> str:
        """Return the stored string, or the key's default when unset or not a string."""
        value = await self.get_setting(conn, key)
        if isinstance(value, str):
            if value:
                return value
            logger.debug(
                "Setting %s is empty, using default %r", key.setting_name, key.default
            )
        elif value is not None:
            logger.warning(
                "Setting %s has non-string value %r, using default %r",
                key.setting_name, value, key.default,
            )
        return key.default

    def invalidate(self) -> None:
        self._cache.clear()
