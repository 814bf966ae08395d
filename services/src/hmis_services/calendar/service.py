"""Calendar registry resolving the system calendar from settings."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import psycopg

from ..settings import SettingKey, SystemSettingManager
from .base import DATE_FORMATS, Calendar, DateFormat
from .calendars import Iso8601Calendar

logger = logging.getLogger(__name__)


class CalendarService:
    """Holds every supported calendar keyed by name.

    The system calendar and date format come from the keyCalendar and
    keyDateFormat settings. An unknown calendar key falls back to ISO 8601,
    an unknown date format to yyyy-MM-dd.
    """

    def __init__(
        self,
        settings: SystemSettingManager,
        calendars: Iterable[Calendar],
    ) -> None:
        if settings is None:
            raise ValueError("settings is required")
        if calendars is None:
            raise ValueError("calendars is required")

        self._settings = settings
        self._calendars: dict[str, Calendar] = {}
        for calendar in calendars:
            self._calendars[calendar.name] = calendar
        self._fallback = Iso8601Calendar()

    def get_calendar(self, name: str) -> Calendar | None:
        return self._calendars.get(name)

    def get_all_calendars(self) -> list[Calendar]:
        return sorted(self._calendars.values(), key=lambda c: c.name)

    def get_all_date_formats(self) -> list[DateFormat]:
        return list(DATE_FORMATS)

    async def get_system_calendar(self, conn: psycopg.AsyncConnection[Any]) -> Calendar:
        calendar_key = await self._settings.get_string_setting(conn, SettingKey.CALENDAR)
        date_format = await self._settings.get_string_setting(conn, SettingKey.DATE_FORMAT)

        calendar = self._calendars.get(calendar_key)
        if calendar is None:
            logger.warning(
                "Unknown calendar %r in system settings, falling back to %s",
                calendar_key, self._fallback.name,
            )
            calendar = self._fallback

        return calendar.with_date_format(date_format)

    async def get_system_date_format(self, conn: psycopg.AsyncConnection[Any]) -> DateFormat:
        date_format_key = await self._settings.get_string_setting(conn, SettingKey.DATE_FORMAT)

        for date_format in DATE_FORMATS:
            if date_format.name == date_format_key:
                return date_format

        return DATE_FORMATS[0]
