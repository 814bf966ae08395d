"""Tests for calendar arithmetic, date formats and the calendar registry."""

from datetime import date

import pytest

from hmis_services.calendar import (
    DATE_FORMATS,
    CalendarService,
    CopticCalendar,
    DateUnit,
    EthiopianCalendar,
    GregorianCalendar,
    IslamicCalendar,
    Iso8601Calendar,
    JulianCalendar,
    ThaiCalendar,
    default_calendars,
)
from hmis_services.calendar.base import get_date_format, iso_from_jdn, jdn_from_iso
from hmis_services.settings import SettingKey


class TestJulianDayNumber:
    def test_known_anchor(self):
        assert jdn_from_iso(date(2000, 1, 1)) == 2451545

    def test_inverse(self):
        assert iso_from_jdn(2460200) == date(2023, 9, 12)


class TestConversions:
    @pytest.mark.parametrize("calendar, unit, iso", [
        (GregorianCalendar(), DateUnit(2024, 2, 29), date(2024, 2, 29)),
        (ThaiCalendar(), DateUnit(2566, 1, 1), date(2023, 1, 1)),
        (JulianCalendar(), DateUnit(2000, 1, 1), date(2000, 1, 14)),
        (CopticCalendar(), DateUnit(1740, 1, 1), date(2023, 9, 12)),
        (EthiopianCalendar(), DateUnit(2016, 1, 1), date(2023, 9, 12)),
        (EthiopianCalendar(), DateUnit(2015, 13, 6), date(2023, 9, 11)),
        (IslamicCalendar(), DateUnit(1445, 1, 1), date(2023, 7, 19)),
    ])
    def test_known_dates(self, calendar, unit, iso):
        assert calendar.to_iso(unit) == iso
        assert calendar.from_iso(iso) == unit

    @pytest.mark.parametrize("calendar", default_calendars(), ids=lambda c: c.name)
    def test_consecutive_days_stay_valid(self, calendar):
        unit = calendar.from_iso(date(2023, 8, 1))
        for _ in range(400):
            following = calendar.plus_days(unit, 1)
            assert calendar.is_valid(following)
            assert calendar.to_jdn(following) == calendar.to_jdn(unit) + 1
            unit = following


class TestCalendarRules:
    def test_ethiopian_thirteenth_month(self):
        cal = EthiopianCalendar()
        assert cal.months_in_year(2016) == 13
        assert cal.is_leap_year(2015)
        assert cal.days_in_month(2015, 13) == 6
        assert cal.days_in_month(2016, 13) == 5
        assert cal.days_in_year(2015) == 366
        assert not cal.is_valid(DateUnit(2016, 13, 6))

    def test_julian_leap_century(self):
        cal = JulianCalendar()
        assert cal.is_leap_year(1900)
        assert cal.days_in_month(1900, 2) == 29
        assert not GregorianCalendar().is_leap_year(1900)

    def test_islamic_month_lengths(self):
        cal = IslamicCalendar()
        assert cal.is_leap_year(1445)
        assert cal.days_in_month(1445, 12) == 30
        assert cal.days_in_month(1446, 12) == 29
        assert cal.days_in_year(1446) == 354

    def test_to_iso_rejects_invalid_date(self):
        with pytest.raises(ValueError, match="Invalid gregorian date"):
            GregorianCalendar().to_iso(DateUnit(2023, 13, 1))


class TestDateFormats:
    def test_supported_formats(self):
        assert [f.name for f in DATE_FORMATS] == ["yyyy-MM-dd", "dd-MM-yyyy"]
        assert DATE_FORMATS[0].jquery_ui == "yyyy-mm-dd"
        assert DATE_FORMATS[1].jquery_ui == "dd-mm-yyyy"

    def test_unknown_name_falls_back_to_iso(self):
        assert get_date_format("MM/dd/yyyy") is DATE_FORMATS[0]
        assert get_date_format(None) is DATE_FORMATS[0]

    def test_format_and_parse(self):
        cal = EthiopianCalendar().with_date_format("dd-MM-yyyy")
        assert cal.format_date(DateUnit(2016, 1, 1)) == "01-01-2016"
        assert cal.parse_date("06-13-2015") == DateUnit(2015, 13, 6)

    def test_parse_rejects_other_pattern(self):
        with pytest.raises(ValueError, match="does not match"):
            Iso8601Calendar().parse_date("12-09-2023")

    def test_parse_rejects_date_outside_calendar(self):
        with pytest.raises(ValueError, match="Invalid iso8601 date"):
            Iso8601Calendar().parse_date("2023-02-30")

    def test_with_date_format_leaves_original_untouched(self):
        cal = CopticCalendar()
        configured = cal.with_date_format("dd-MM-yyyy")
        assert configured is not cal
        assert configured.date_format == "dd-MM-yyyy"
        assert cal.date_format == "yyyy-MM-dd"


class _StaticSettings:
    """Stands in for SystemSettingManager with fixed values."""

    def __init__(self, values=None):
        self.values = values or {}

    async def get_string_setting(self, conn, key: SettingKey) -> str:
        return self.values.get(key, key.default)


class TestCalendarService:
    def test_requires_settings_and_calendars(self):
        with pytest.raises(ValueError):
            CalendarService(None, default_calendars())
        with pytest.raises(ValueError):
            CalendarService(_StaticSettings(), None)

    def test_calendars_sorted_by_name(self):
        service = CalendarService(_StaticSettings(), default_calendars())
        assert [c.name for c in service.get_all_calendars()] == [
            "coptic", "ethiopian", "gregorian", "islamic", "iso8601", "julian", "thai",
        ]
        assert service.get_calendar("ethiopian").name == "ethiopian"
        assert service.get_calendar("persian") is None

    def test_duplicate_name_last_wins(self):
        later = EthiopianCalendar()
        service = CalendarService(_StaticSettings(), [EthiopianCalendar(), later])
        assert service.get_calendar("ethiopian") is later
        assert len(service.get_all_calendars()) == 1

    def test_all_date_formats(self):
        service = CalendarService(_StaticSettings(), [])
        assert service.get_all_date_formats() == list(DATE_FORMATS)

    @pytest.mark.asyncio
    async def test_system_calendar_from_settings(self):
        settings = _StaticSettings({
            SettingKey.CALENDAR: "ethiopian",
            SettingKey.DATE_FORMAT: "dd-MM-yyyy",
        })
        registered = EthiopianCalendar()
        service = CalendarService(settings, [registered])

        calendar = await service.get_system_calendar(conn=None)
        assert isinstance(calendar, EthiopianCalendar)
        assert calendar.date_format == "dd-MM-yyyy"
        assert registered.date_format == "yyyy-MM-dd"

    @pytest.mark.asyncio
    async def test_unknown_calendar_falls_back_to_iso8601(self, caplog):
        settings = _StaticSettings({SettingKey.CALENDAR: "martian"})
        service = CalendarService(settings, default_calendars())

        calendar = await service.get_system_calendar(conn=None)
        assert calendar.name == "iso8601"
        assert calendar.date_format == "yyyy-MM-dd"
        assert "martian" in caplog.text

    @pytest.mark.asyncio
    async def test_system_date_format(self):
        service = CalendarService(
            _StaticSettings({SettingKey.DATE_FORMAT: "dd-MM-yyyy"}), default_calendars()
        )
        assert (await service.get_system_date_format(conn=None)).name == "dd-MM-yyyy"

    @pytest.mark.asyncio
    async def test_unknown_date_format_falls_back(self):
        service = CalendarService(
            _StaticSettings({SettingKey.DATE_FORMAT: "yyyy/MM/dd"}), default_calendars()
        )
        assert (await service.get_system_date_format(conn=None)) is DATE_FORMATS[0]
