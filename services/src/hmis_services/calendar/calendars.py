"""Built-in calendars.

Arithmetic follows the usual JDN formulas (Tøndering for Julian,
Calendrical Calculations for the Alexandrian and tabular Islamic
calendars).
"""

from __future__ import annotations

import calendar as _stdlib_calendar
from datetime import date

from .base import Calendar, DateUnit, iso_from_jdn, jdn_from_iso


class GregorianCalendar(Calendar):
    name = "gregorian"

    def to_jdn(self, unit: DateUnit) -> int:
        return jdn_from_iso(date(unit.year, unit.month, unit.day))

    def from_jdn(self, jdn: int) -> DateUnit:
        value = iso_from_jdn(jdn)
        return DateUnit(value.year, value.month, value.day)

    def is_leap_year(self, year: int) -> bool:
        return _stdlib_calendar.isleap(year)

    def days_in_month(self, year: int, month: int) -> int:
        return _stdlib_calendar.monthrange(year, month)[1]


class Iso8601Calendar(GregorianCalendar):
    """Proleptic Gregorian; the system fallback."""

    name = "iso8601"


class ThaiCalendar(GregorianCalendar):
    """Gregorian months and days, Buddhist Era years (Gregorian + 543)."""

    name = "thai"
    YEAR_OFFSET = 543

    def to_jdn(self, unit: DateUnit) -> int:
        return super().to_jdn(DateUnit(unit.year - self.YEAR_OFFSET, unit.month, unit.day))

    def from_jdn(self, jdn: int) -> DateUnit:
        unit = super().from_jdn(jdn)
        return DateUnit(unit.year + self.YEAR_OFFSET, unit.month, unit.day)

    def is_leap_year(self, year: int) -> bool:
        return super().is_leap_year(year - self.YEAR_OFFSET)

    def days_in_month(self, year: int, month: int) -> int:
        return super().days_in_month(year - self.YEAR_OFFSET, month)


class JulianCalendar(Calendar):
    name = "julian"

    _MONTH_DAYS = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)

    def to_jdn(self, unit: DateUnit) -> int:
        a = (14 - unit.month) // 12
        y = unit.year + 4800 - a
        m = unit.month + 12 * a - 3
        return unit.day + (153 * m + 2) // 5 + 365 * y + y // 4 - 32083

    def from_jdn(self, jdn: int) -> DateUnit:
        c = jdn + 32082
        d = (4 * c + 3) // 1461
        e = c - (1461 * d) // 4
        m = (5 * e + 2) // 153
        day = e - (153 * m + 2) // 5 + 1
        month = m + 3 - 12 * (m // 10)
        year = d - 4800 + m // 10
        return DateUnit(year, month, day)

    def is_leap_year(self, year: int) -> bool:
        return year % 4 == 0

    def days_in_month(self, year: int, month: int) -> int:
        if month == 2 and self.is_leap_year(year):
            return 29
        return self._MONTH_DAYS[month - 1]


class _AlexandrianCalendar(Calendar):
    """Twelve 30-day months plus a 13th month of 5 (6 in leap years) days."""

    EPOCH_JDN: int = 0

    def to_jdn(self, unit: DateUnit) -> int:
        return (
            self.EPOCH_JDN - 1
            + 365 * (unit.year - 1)
            + unit.year // 4
            + 30 * (unit.month - 1)
            + unit.day
        )

    def from_jdn(self, jdn: int) -> DateUnit:
        year = (4 * (jdn - self.EPOCH_JDN) + 1463) // 1461
        month = (jdn - self.to_jdn(DateUnit(year, 1, 1))) // 30 + 1
        day = jdn + 1 - self.to_jdn(DateUnit(year, month, 1))
        return DateUnit(year, month, day)

    def is_leap_year(self, year: int) -> bool:
        return year % 4 == 3

    def months_in_year(self, year: int) -> int:
        return 13

    def days_in_month(self, year: int, month: int) -> int:
        if month < 13:
            return 30
        return 6 if self.is_leap_year(year) else 5


class CopticCalendar(_AlexandrianCalendar):
    name = "coptic"
    EPOCH_JDN = 1825030


class EthiopianCalendar(_AlexandrianCalendar):
    name = "ethiopian"
    EPOCH_JDN = 1724221


class IslamicCalendar(Calendar):
    """Tabular (civil) Islamic calendar, 30-year cycle with 11 leap years."""

    name = "islamic"
    EPOCH_JDN = 1948440

    def to_jdn(self, unit: DateUnit) -> int:
        return (
            unit.day
            + (59 * (unit.month - 1) + 1) // 2
            + (unit.year - 1) * 354
            + (3 + 11 * unit.year) // 30
            + self.EPOCH_JDN - 1
        )

    def from_jdn(self, jdn: int) -> DateUnit:
        year = (30 * (jdn - self.EPOCH_JDN) + 10646) // 10631
        elapsed = jdn - (29 + self.to_jdn(DateUnit(year, 1, 1)))
        month = min(12, -(-2 * elapsed // 59) + 1)
        day = jdn - self.to_jdn(DateUnit(year, month, 1)) + 1
        return DateUnit(year, month, day)

    def is_leap_year(self, year: int) -> bool:
        return (14 + 11 * year) % 30 < 11

    def days_in_month(self, year: int, month: int) -> int:
        if month == 12 and self.is_leap_year(year):
            return 30
        return 30 if month % 2 == 1 else 29


def default_calendars() -> list[Calendar]:
    """One instance of every built-in calendar."""
    return [
        Iso8601Calendar(),
        GregorianCalendar(),
        JulianCalendar(),
        ThaiCalendar(),
        CopticCalendar(),
        EthiopianCalendar(),
        IslamicCalendar(),
    ]
