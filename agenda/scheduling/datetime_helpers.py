import datetime as dt
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta
from loguru import logger

from agenda.domain.exceptions import MalformedTimeError


def parse_clock(value: object, field_name: str = "time") -> dt.time:
    """Parse ``"HH:MM"`` (24-hour) into a whole-minute ``dt.time``."""
    if isinstance(value, dt.time):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = dt.time.fromisoformat(value.strip())
        except ValueError as exc:
            raise MalformedTimeError(
                f"Invalid time for '{field_name}': '{value}'. Expected HH:MM."
            ) from exc
    else:
        raise MalformedTimeError(
            f"Invalid time for '{field_name}': must be a string in HH:MM format."
        )

    if parsed.second or parsed.microsecond:
        raise MalformedTimeError(
            f"Invalid time for '{field_name}': '{value}' is not on a whole minute."
        )
    return parsed.replace(tzinfo=None)


def parse_date(value: object, field_name: str = "date") -> dt.date:
    """Parse an ISO 8601 ``YYYY-MM-DD`` date."""
    if isinstance(value, dt.datetime):
        raise MalformedTimeError(
            f"Invalid date for '{field_name}': expected a date, got a datetime."
        )
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str):
        raise MalformedTimeError(
            f"Invalid date for '{field_name}': must be a string in YYYY-MM-DD format."
        )
    try:
        return dt.date.fromisoformat(value.strip())
    except ValueError as exc:
        raise MalformedTimeError(
            f"Invalid date for '{field_name}': '{value}'. Expected YYYY-MM-DD."
        ) from exc


def day_of_week(date: dt.date) -> int:
    """Weekday with Sunday as 0 and Saturday as 6."""
    return (date.weekday() + 1) % 7


def is_weekend(date: dt.date) -> bool:
    return date.weekday() >= 5


def add_months(moment: dt.datetime, months: int) -> dt.datetime:
    """Calendar-month addition; ``Jan 31 + 1 month`` clamps to the end of February."""
    return moment + relativedelta(months=months)


def month_bounds(date: dt.date) -> tuple[dt.date, dt.date]:
    """First and last day of ``date``'s calendar month."""
    first = date.replace(day=1)
    return first, first + relativedelta(months=1, days=-1)


def resolve_timezone(name: str) -> dt.tzinfo:
    """Resolve a timezone name, falling back to UTC if invalid."""
    try:
        return ZoneInfo(name)
    except Exception:
        logger.warning("Invalid clinic timezone '{}'; defaulting to UTC", name)
        return dt.timezone.utc
