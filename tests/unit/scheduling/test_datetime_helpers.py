import datetime as dt

import pytest

from agenda.domain.exceptions import MalformedTimeError
from agenda.scheduling.datetime_helpers import (
    add_months,
    day_of_week,
    is_weekend,
    month_bounds,
    parse_clock,
    parse_date,
    resolve_timezone,
)


class TestDayOfWeek:
    """Sunday-based weekday numbering used by template entries."""

    @pytest.mark.parametrize(
        ("date", "expected"),
        [
            (dt.date(2026, 3, 8), 0),
            (dt.date(2026, 3, 9), 1),
            (dt.date(2026, 3, 11), 3),
            (dt.date(2026, 3, 14), 6),
        ],
        ids=["sunday", "monday", "wednesday", "saturday"],
    )
    def test_numbering(self, date: dt.date, expected: int) -> None:
        assert day_of_week(date) == expected

    def test_weekend(self) -> None:
        assert is_weekend(dt.date(2026, 3, 7))
        assert is_weekend(dt.date(2026, 3, 8))
        assert not is_weekend(dt.date(2026, 3, 9))


class TestAddMonths:
    @pytest.mark.parametrize(
        ("moment", "months", "expected"),
        [
            (dt.datetime(2026, 3, 2, 8, 0), 6, dt.datetime(2026, 9, 2, 8, 0)),
            (dt.datetime(2026, 8, 31, 10, 0), 6, dt.datetime(2027, 2, 28, 10, 0)),
            (dt.datetime(2027, 8, 31, 10, 0), 6, dt.datetime(2028, 2, 29, 10, 0)),
            (dt.datetime(2026, 1, 15), 0, dt.datetime(2026, 1, 15)),
        ],
        ids=["plain", "clamps-to-february", "leap-year", "zero"],
    )
    def test_calendar_months(self, moment: dt.datetime, months: int, expected: dt.datetime) -> None:
        assert add_months(moment, months) == expected


class TestMonthBounds:
    @pytest.mark.parametrize(
        ("date", "expected"),
        [
            (dt.date(2026, 3, 9), (dt.date(2026, 3, 1), dt.date(2026, 3, 31))),
            (dt.date(2026, 2, 28), (dt.date(2026, 2, 1), dt.date(2026, 2, 28))),
            (dt.date(2028, 2, 1), (dt.date(2028, 2, 1), dt.date(2028, 2, 29))),
            (dt.date(2026, 12, 31), (dt.date(2026, 12, 1), dt.date(2026, 12, 31))),
        ],
        ids=["march", "february", "leap-february", "december"],
    )
    def test_bounds(self, date: dt.date, expected: tuple[dt.date, dt.date]) -> None:
        assert month_bounds(date) == expected

class TestParseClock:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("09:00", dt.time(9, 0)), ("23:59", dt.time(23, 59)), (" 14:30 ", dt.time(14, 30))],
        ids=["morning", "before-midnight", "whitespace"],
    )
    def test_parses(self, value: str, expected: dt.time) -> None:
        assert parse_clock(value) == expected

    def test_passes_through_time_objects(self) -> None:
        assert parse_clock(dt.time(10, 15)) == dt.time(10, 15)

    @pytest.mark.parametrize("value", ["25:00", "noon", "10:00:15", 930, None])
    def test_rejects_malformed(self, value: object) -> None:
        with pytest.raises(MalformedTimeError):
            parse_clock(value, "start")


class TestParseDate:
    def test_parses_iso(self) -> None:
        assert parse_date("2026-03-09") == dt.date(2026, 3, 9)

    @pytest.mark.parametrize("value", ["09/03/2026", "2026-02-30", "", 20260309])
    def test_rejects_malformed(self, value: object) -> None:
        with pytest.raises(MalformedTimeError, match="Invalid date"):
            parse_date(value)

    def test_rejects_datetime(self) -> None:
        with pytest.raises(MalformedTimeError):
            parse_date(dt.datetime(2026, 3, 9, 10, 0))


class TestResolveTimezone:
    def test_known_zone(self) -> None:
        tz = resolve_timezone("America/Argentina/Buenos_Aires")
        assert dt.datetime(2026, 3, 9, tzinfo=tz).utcoffset() == dt.timedelta(hours=-3)

    def test_invalid_zone_falls_back_to_utc(self) -> None:
        assert resolve_timezone("Not/AZone") is dt.timezone.utc
