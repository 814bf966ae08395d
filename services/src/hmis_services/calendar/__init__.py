from .base import DATE_FORMATS, Calendar, DateFormat, DateUnit, get_date_format  # noqa: F401
from .calendars import (  # noqa: F401
    CopticCalendar,
    EthiopianCalendar,
    GregorianCalendar,
    IslamicCalendar,
    Iso8601Calendar,
    JulianCalendar,
    ThaiCalendar,
    default_calendars,
)
from .service import CalendarService  # noqa: F401
