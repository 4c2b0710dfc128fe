"""Concurrent booking races against real threads.

Every worker validates and books an overlapping window for the same doctor
and day at the same moment; the store's transaction must let exactly one of
them commit.
"""

import datetime as dt
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from agenda.booking.service import BookingService
from agenda.config import SchedulingConfig
from agenda.domain.models import (
    AvailabilityTemplateEntry,
    BookingOutcome,
    Contract,
    FailureReason,
    TimeWindow,
)
from agenda.scheduling.engine import AvailabilityEngine
from agenda.scheduling.interval_math import parse_window
from agenda.store.adapters.memory import InMemoryAppointmentStore
from agenda.store.adapters.sqlite import SQLiteAppointmentStore
from agenda.store.ports import AbstractAppointmentStore, FixedClock

pytestmark = pytest.mark.integration

MONDAY = dt.date(2026, 3, 9)
WORKERS = 8
OVERLAPPING = [
    parse_window("10:00", "10:30"),
    parse_window("10:15", "10:45"),
    parse_window("10:00", "11:00"),
    parse_window("10:15", "10:30"),
]


def seed(store: AbstractAppointmentStore) -> None:
    store.add_doctor("doc-1")
    store.add_contract(
        Contract(doctor_id="doc-1", start_date=dt.date(2026, 1, 1), end_date=dt.date(2026, 12, 31))
    )
    store.add_template_entry(
        AvailabilityTemplateEntry(
            doctor_id="doc-1",
            day_of_week=1,
            start_time=dt.time(9, 0),
            end_time=dt.time(12, 0),
            slot_duration_minutes=30,
        )
    )


def make_service(store: AbstractAppointmentStore) -> BookingService:
    clock = FixedClock(dt.datetime(2026, 3, 2, 8, 0))
    return BookingService(store, AvailabilityEngine(store, SchedulingConfig(), clock))


def race(services: list[BookingService], windows: list[TimeWindow]) -> list[BookingOutcome]:
    barrier = threading.Barrier(len(windows))

    def attempt(index: int) -> BookingOutcome:
        service = services[index % len(services)]
        barrier.wait()
        return service.book("doc-1", f"pat-{index}", MONDAY, windows[index])

    with ThreadPoolExecutor(max_workers=len(windows)) as pool:
        return list(pool.map(attempt, range(len(windows))))


StoreFactory = Callable[[Path], list[AbstractAppointmentStore]]


def memory_stores(tmp_path: Path) -> list[AbstractAppointmentStore]:
    return [InMemoryAppointmentStore()]


def shared_sqlite_connection(tmp_path: Path) -> list[AbstractAppointmentStore]:
    return [SQLiteAppointmentStore(str(tmp_path / "agenda.db"))]


def two_sqlite_connections(tmp_path: Path) -> list[AbstractAppointmentStore]:
    path = str(tmp_path / "agenda.db")
    first = SQLiteAppointmentStore(path)
    return [first, SQLiteAppointmentStore(path)]


@pytest.fixture(
    params=[memory_stores, shared_sqlite_connection, two_sqlite_connections],
    ids=["memory", "sqlite-shared", "sqlite-two-connections"],
)
def stores(
    request: pytest.FixtureRequest, tmp_path: Path
) -> Iterator[list[AbstractAppointmentStore]]:
    factory: StoreFactory = request.param
    built = factory(tmp_path)
    seed(built[0])
    yield built
    for store in built:
        store.close()


class TestConcurrentBooking:
    def test_exactly_one_overlapping_booking_wins(
        self, stores: list[AbstractAppointmentStore]
    ) -> None:
        services = [make_service(store) for store in stores]
        windows = [OVERLAPPING[i % len(OVERLAPPING)] for i in range(WORKERS)]

        outcomes = race(services, windows)

        winners = [o for o in outcomes if o.verdict.accepted]
        losers = [o for o in outcomes if not o.verdict.accepted]
        assert len(winners) == 1
        assert {o.verdict.failure_reason for o in losers} == {FailureReason.OVERLAP_CONFLICT}
        assert len(stores[0].list_appointments("doc-1", MONDAY)) == 1

    def test_non_conflicting_bookings_all_succeed(
        self, stores: list[AbstractAppointmentStore]
    ) -> None:
        services = [make_service(store) for store in stores]
        windows = [
            parse_window("09:00", "09:30"),
            parse_window("10:00", "10:30"),
            parse_window("11:00", "11:30"),
        ]

        outcomes = race(services, windows)

        assert all(o.verdict.accepted for o in outcomes)
        booked = stores[0].list_appointments("doc-1", MONDAY)
        assert [str(a.window) for a in booked] == ["09:00-09:30", "10:00-10:30", "11:00-11:30"]

    def test_cancelled_appointment_gets_one_replacement(
        self, stores: list[AbstractAppointmentStore]
    ) -> None:
        services = [make_service(store) for store in stores]
        original = services[0].book("doc-1", "pat-0", MONDAY, parse_window("09:00", "09:30"))
        assert original.appointment is not None
        original_id = original.appointment.appointment_id
        services[0].cancel(original_id)
        targets = [
            (date, parse_window(start, end))
            for date in (MONDAY, MONDAY + dt.timedelta(days=7))
            for start, end in (("09:00", "09:30"), ("10:00", "10:30"), ("11:00", "11:30"))
        ]
        barrier = threading.Barrier(len(targets))

        def attempt(index: int) -> BookingOutcome:
            service = services[index % len(services)]
            date, window = targets[index]
            barrier.wait()
            return service.reschedule(original_id, date, window)

        with ThreadPoolExecutor(max_workers=len(targets)) as pool:
            outcomes = list(pool.map(attempt, range(len(targets))))

        losers = [o for o in outcomes if not o.verdict.accepted]
        assert len(outcomes) - len(losers) == 1
        assert {o.verdict.failure_reason for o in losers} == {FailureReason.INVALID_TRANSITION}
        replacement = stores[0].find_replacement(original_id)
        assert replacement is not None
        assert replacement.state.value == "scheduled"
