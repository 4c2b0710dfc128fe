import datetime as dt

from agenda.domain.models import AvailabilityTemplateEntry
from agenda.scheduling.interval_math import parse_window
from agenda.scheduling.templates import fits_template, generate_slots, tile_entry

MONDAY = dt.date(2026, 3, 9)


def entry(
    start: str,
    end: str,
    minutes: int,
    *,
    day: int = 1,
    active: bool = True,
    entry_id: str | None = None,
) -> AvailabilityTemplateEntry:
    return AvailabilityTemplateEntry(
        entry_id=entry_id,
        doctor_id="doc-1",
        day_of_week=day,
        start_time=dt.time.fromisoformat(start),
        end_time=dt.time.fromisoformat(end),
        slot_duration_minutes=minutes,
        active=active,
    )


class TestTileEntry:
    def test_tiles_consecutive_slots(self) -> None:
        slots = tile_entry(entry("09:00", "12:00", 30))

        assert [str(s) for s in slots] == [
            "09:00-09:30",
            "09:30-10:00",
            "10:00-10:30",
            "10:30-11:00",
            "11:00-11:30",
            "11:30-12:00",
        ]

    def test_drops_trailing_partial_slot(self) -> None:
        slots = tile_entry(entry("09:00", "10:10", 30))

        assert [str(s) for s in slots] == ["09:00-09:30", "09:30-10:00"]

    def test_block_shorter_than_one_slot_yields_nothing(self) -> None:
        assert tile_entry(entry("09:00", "09:20", 30)) == []


class TestGenerateSlots:
    def test_only_entries_for_the_weekday(self) -> None:
        entries = [entry("09:00", "10:00", 30, day=1), entry("14:00", "15:00", 30, day=2)]

        assert [str(s) for s in generate_slots(entries, MONDAY)] == ["09:00-09:30", "09:30-10:00"]

    def test_inactive_entries_ignored(self) -> None:
        entries = [entry("09:00", "10:00", 30, active=False)]

        assert generate_slots(entries, MONDAY) == []

    def test_no_entries_is_empty_not_error(self) -> None:
        assert generate_slots([], MONDAY) == []

    def test_morning_and_afternoon_blocks_are_ordered(self) -> None:
        entries = [entry("14:00", "15:00", 30), entry("09:00", "10:00", 30)]

        assert [str(s) for s in generate_slots(entries, MONDAY)] == [
            "09:00-09:30",
            "09:30-10:00",
            "14:00-14:30",
            "14:30-15:00",
        ]

    def test_overlapping_entries_deduplicate(self) -> None:
        entries = [entry("09:00", "10:30", 30), entry("09:30", "11:00", 30)]

        assert [str(s) for s in generate_slots(entries, MONDAY)] == [
            "09:00-09:30",
            "09:30-10:00",
            "10:00-10:30",
            "10:30-11:00",
        ]

    def test_mixed_granularities_kept_independent(self) -> None:
        entries = [entry("09:00", "10:00", 60), entry("09:00", "10:00", 30)]

        assert [str(s) for s in generate_slots(entries, MONDAY)] == [
            "09:00-09:30",
            "09:00-10:00",
            "09:30-10:00",
        ]


class TestFitsTemplate:
    def test_window_inside_a_block(self) -> None:
        entries = [entry("09:00", "12:00", 30)]

        assert fits_template(entries, MONDAY, parse_window("10:15", "10:45"))

    def test_window_spanning_two_blocks_does_not_fit(self) -> None:
        entries = [entry("09:00", "10:00", 30), entry("10:30", "12:00", 30)]

        assert not fits_template(entries, MONDAY, parse_window("09:45", "10:45"))

    def test_no_entries_never_fits(self) -> None:
        assert not fits_template([], MONDAY, parse_window("10:00", "10:30"))
