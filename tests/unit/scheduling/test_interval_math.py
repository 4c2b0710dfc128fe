import datetime as dt
import itertools

import pytest

from agenda.domain.exceptions import MalformedTimeError
from agenda.domain.models import TimeWindow
from agenda.scheduling.interval_math import (
    contains,
    gap_minutes,
    overlaps,
    parse_window,
    window_from_duration,
)


def w(start: str, end: str) -> TimeWindow:
    return parse_window(start, end)


class TestOverlaps:
    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            (w("10:00", "10:30"), w("10:15", "10:45"), True),
            (w("10:00", "10:30"), w("10:30", "11:00"), False),
            (w("10:00", "12:00"), w("10:30", "11:00"), True),
            (w("10:00", "10:30"), w("10:00", "10:30"), True),
            (w("09:00", "09:30"), w("10:00", "10:30"), False),
            (w("10:00", "10:00"), w("09:00", "11:00"), False),
            (w("10:00", "10:00"), w("10:00", "10:00"), False),
        ],
        ids=[
            "partial",
            "back-to-back",
            "contained",
            "identical",
            "disjoint",
            "zero-length",
            "both-zero",
        ],
    )
    def test_overlap_cases(self, a: TimeWindow, b: TimeWindow, expected: bool) -> None:
        assert overlaps(a, b) is expected

    def test_symmetric_for_all_pairs(self) -> None:
        windows = [
            w("09:00", "09:30"),
            w("09:15", "09:45"),
            w("09:30", "10:00"),
            w("09:00", "12:00"),
            w("11:00", "11:00"),
            w("11:59", "12:00"),
        ]
        for a, b in itertools.product(windows, repeat=2):
            assert overlaps(a, b) == overlaps(b, a)


class TestGapMinutes:
    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            (w("10:00", "10:30"), w("10:33", "11:03"), 3),
            (w("10:33", "11:03"), w("10:00", "10:30"), 3),
            (w("10:00", "10:30"), w("10:30", "11:00"), 0),
            (w("10:00", "10:30"), w("10:25", "10:55"), -5),
            (w("09:00", "11:00"), w("09:30", "10:00"), -90),
        ],
        ids=["after", "before", "adjacent", "overlap", "contained"],
    )
    def test_gap(self, a: TimeWindow, b: TimeWindow, expected: int) -> None:
        assert gap_minutes(a, b) == expected

    def test_negative_iff_overlapping_for_non_empty_windows(self) -> None:
        windows = [
            w("09:00", "09:30"),
            w("09:20", "09:50"),
            w("09:30", "10:00"),
            w("08:00", "12:00"),
        ]
        for a, b in itertools.product(windows, repeat=2):
            assert (gap_minutes(a, b) < 0) == overlaps(a, b)


class TestContains:
    def test_inner_window_is_contained(self) -> None:
        assert contains(w("09:00", "12:00"), w("09:00", "09:30"))
        assert contains(w("09:00", "12:00"), w("11:30", "12:00"))

    def test_window_crossing_boundary_is_not_contained(self) -> None:
        assert not contains(w("09:00", "12:00"), w("11:45", "12:15"))


class TestParsing:
    def test_parse_window(self) -> None:
        window = parse_window("09:00", "09:30")

        assert window.start == dt.time(9, 0)
        assert window.end == dt.time(9, 30)
        assert window.duration_minutes == 30
        assert str(window) == "09:00-09:30"

    def test_window_from_duration(self) -> None:
        assert window_from_duration("10:33", 30) == w("10:33", "11:03")

    @pytest.mark.parametrize(
        ("start", "end"),
        [("9am", "10:00"), ("10:00", "09:00"), ("10:00:30", "10:30"), ("", "10:00")],
        ids=["not-iso", "reversed", "seconds", "empty"],
    )
    def test_malformed_input_raises(self, start: str, end: str) -> None:
        with pytest.raises(MalformedTimeError):
            parse_window(start, end)

    def test_duration_past_midnight_raises(self) -> None:
        with pytest.raises(MalformedTimeError):
            window_from_duration("23:30", 45)
