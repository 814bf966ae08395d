"""Calendar primitives.

Every calendar converts its own (year, month, day) to and from the Julian
Day Number (JDN, integer, noon based). Conversions to ISO dates go through
the JDN so any two calendars can be compared.
"""

from __future__ import annotations

import copy
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date

# JDN of 0001-01-01 (proleptic Gregorian) minus date.toordinal() of that day
JDN_ORDINAL_OFFSET = 1721425

_FORMAT_TOKENS = re.compile(r"yyyy|MM|dd")


@dataclass(frozen=True, order=True)
class DateUnit:
    year: int
    month: int
    day: int


@dataclass(frozen=True)
class DateFormat:
    """A date pattern in the notations the front-ends understand."""

    name: str
    js: str
    java: str
    jquery_ui: str

    def format(self, unit: DateUnit) -> str:
        values = {
            "yyyy": f"{unit.year:04d}",
            "MM": f"{unit.month:02d}",
            "dd": f"{unit.day:02d}",
        }
        return _FORMAT_TOKENS.sub(lambda m: values[m.group(0)], self.java)

    def parse(self, text: str) -> DateUnit:
        pattern = _FORMAT_TOKENS.sub(
            lambda m: {
                "yyyy": r"(?P<year>-?\d{1,4})",
                "MM": r"(?P<month>\d{1,2})",
                "dd": r"(?P<day>\d{1,2})",
            }[m.group(0)],
            re.escape(self.java),
        )
        match = re.fullmatch(pattern, text.strip())
        if not match:
            raise ValueError(f"Date {text!r} does not match format {self.name!r}")
        return DateUnit(int(match["year"]), int(match["month"]), int(match["day"]))


ISO_DATE_FORMAT = DateFormat("yyyy-MM-dd", "yyyy-MM-dd", "yyyy-MM-dd", "yyyy-mm-dd")
DMY_DATE_FORMAT = DateFormat("dd-MM-yyyy", "dd-MM-yyyy", "dd-MM-yyyy", "dd-mm-yyyy")

DATE_FORMATS: tuple[DateFormat, ...] = (ISO_DATE_FORMAT, DMY_DATE_FORMAT)


def get_date_format(name: str | None) -> DateFormat:
    """Date format by name; unknown names resolve to the ISO format."""
    for date_format in DATE_FORMATS:
        if date_format.name == name:
            return date_format
    return DATE_FORMATS[0]


def jdn_from_iso(value: date) -> int:
    return value.toordinal() + JDN_ORDINAL_OFFSET


def iso_from_jdn(jdn: int) -> date:
    return date.fromordinal(jdn - JDN_ORDINAL_OFFSET)


class Calendar(ABC):
    name: str = ""

    def __init__(self, date_format: str = ISO_DATE_FORMAT.name) -> None:
        self.date_format = date_format

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, date_format={self.date_format!r})"

    def with_date_format(self, date_format: str | None) -> Calendar:
        """Return a copy of this calendar using ``date_format``; self is untouched."""
        configured = copy.copy(self)
        configured.date_format = date_format or ISO_DATE_FORMAT.name
        return configured

    @abstractmethod
    def to_jdn(self, unit: DateUnit) -> int: ...

    @abstractmethod
    def from_jdn(self, jdn: int) -> DateUnit: ...

    @abstractmethod
    def is_leap_year(self, year: int) -> bool: ...

    @abstractmethod
    def days_in_month(self, year: int, month: int) -> int: ...

    def months_in_year(self, year: int) -> int:
        return 12

    def days_in_year(self, year: int) -> int:
        return sum(
            self.days_in_month(year, month)
            for month in range(1, self.months_in_year(year) + 1)
        )

    def is_valid(self, unit: DateUnit) -> bool:
        if unit.month < 1 or unit.month > self.months_in_year(unit.year):
            return False
        return 1 <= unit.day <= self.days_in_month(unit.year, unit.month)

    def to_iso(self, unit: DateUnit) -> date:
        if not self.is_valid(unit):
            raise ValueError(f"Invalid {self.name} date: {unit}")
        return iso_from_jdn(self.to_jdn(unit))

    def from_iso(self, value: date) -> DateUnit:
        return self.from_jdn(jdn_from_iso(value))

    def plus_days(self, unit: DateUnit, days: int) -> DateUnit:
        return self.from_jdn(self.to_jdn(unit) + days)

    def today(self) -> DateUnit:
        return self.from_iso(date.today())

    def format_date(self, unit: DateUnit) -> str:
        return get_date_format(self.date_format).format(unit)

    def parse_date(self, text: str) -> DateUnit:
        unit = get_date_format(self.date_format).parse(text)
        if not self.is_valid(unit):
            raise ValueError(f"Invalid {self.name} date: {text!r}")
        return unit
