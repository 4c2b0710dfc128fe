from agenda.domain.exceptions import MalformedTimeError
from agenda.domain.models import TimeWindow
from agenda.scheduling.datetime_helpers import parse_clock


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    """True when the half-open windows share at least one minute.

    Zero-length windows never overlap anything, including themselves.
    """
    if a.duration_minutes == 0 or b.duration_minutes == 0:
        return False
    return a.start_minute < b.end_minute and b.start_minute < a.end_minute


def gap_minutes(a: TimeWindow, b: TimeWindow) -> int:
    """Minutes from the end of the earlier window to the start of the later one.

    Negative when the windows overlap.
    """
    if (a.start_minute, a.end_minute) <= (b.start_minute, b.end_minute):
        first, second = a, b
    else:
        first, second = b, a
    return second.start_minute - first.end_minute


def contains(outer: TimeWindow, inner: TimeWindow) -> bool:
    return outer.start_minute <= inner.start_minute and inner.end_minute <= outer.end_minute


def parse_window(start: object, end: object) -> TimeWindow:
    """Build a window from ``"HH:MM"`` strings, raising ``MalformedTimeError`` on bad input."""
    start_time = parse_clock(start, "start")
    end_time = parse_clock(end, "end")
    if end_time < start_time:
        raise MalformedTimeError(f"Window end {end} is before start {start}")
    return TimeWindow(start=start_time, end=end_time)


def window_from_duration(start: object, duration_minutes: int) -> TimeWindow:
    start_time = parse_clock(start, "start")
    try:
        return TimeWindow.from_start(start_time, duration_minutes)
    except ValueError as exc:
        raise MalformedTimeError(str(exc)) from exc
