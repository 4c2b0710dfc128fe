import datetime as dt
from collections.abc import Iterable

from agenda.domain.models import AvailabilityTemplateEntry, TimeWindow
from agenda.scheduling.datetime_helpers import day_of_week
from agenda.scheduling.interval_math import contains


def tile_entry(entry: AvailabilityTemplateEntry) -> list[TimeWindow]:
    """Cut an entry into consecutive slots, dropping a trailing partial slot."""
    slots: list[TimeWindow] = []
    block = entry.window
    step = entry.slot_duration_minutes
    start = block.start_minute
    while start + step <= block.end_minute:
        slots.append(
            TimeWindow(
                start=dt.time(start // 60, start % 60),
                end=dt.time((start + step) // 60, (start + step) % 60),
            )
        )
        start += step
    return slots


def entries_for_date(
    entries: Iterable[AvailabilityTemplateEntry], date: dt.date
) -> list[AvailabilityTemplateEntry]:
    weekday = day_of_week(date)
    return [e for e in entries if e.active and e.day_of_week == weekday]


def generate_slots(entries: Iterable[AvailabilityTemplateEntry], date: dt.date) -> list[TimeWindow]:
    """Candidate slots for ``date``, ordered by start and de-duplicated.

    Overlapping entries are tiled independently; identical windows collapse
    to one. No active entry for the weekday yields an empty list.
    """
    unique: set[TimeWindow] = set()
    for entry in entries_for_date(entries, date):
        unique.update(tile_entry(entry))
    return sorted(unique, key=lambda w: (w.start, w.end))


def fits_template(
    entries: Iterable[AvailabilityTemplateEntry], date: dt.date, window: TimeWindow
) -> bool:
    """True when ``window`` lies inside at least one active entry for the date's weekday."""
    return any(contains(e.window, window) for e in entries_for_date(entries, date))
