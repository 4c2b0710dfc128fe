import datetime as dt

import pytest

from agenda.booking.service import BookingService
from agenda.config import SchedulingConfig
from agenda.domain.models import AvailabilityTemplateEntry, Contract
from agenda.scheduling.engine import AvailabilityEngine
from agenda.scheduling.state_machine import AppointmentStateMachine
from agenda.store.adapters.memory import InMemoryAppointmentStore
from agenda.store.ports import FixedClock

DOCTOR_ID = "doc-1"
# 2026-03-09 is a Monday (day_of_week 1).
MONDAY = dt.date(2026, 3, 9)


@pytest.fixture
def doctor_id() -> str:
    return DOCTOR_ID


@pytest.fixture
def monday() -> dt.date:
    return MONDAY


@pytest.fixture
def clock() -> FixedClock:
    """One week before ``monday``, so advance-notice rules never bite by default."""
    return FixedClock(dt.datetime(2026, 3, 2, 8, 0))


@pytest.fixture
def config() -> SchedulingConfig:
    return SchedulingConfig(
        business_start=dt.time(8, 0),
        business_end=dt.time(18, 0),
        allowed_intervals_minutes=frozenset({15, 30, 60}),
        min_advance_hours=2,
        max_advance_months=6,
        min_gap_minutes=5,
        daily_limit=20,
        allow_weekends=False,
        blackout_dates=frozenset(),
    )


@pytest.fixture
def store() -> InMemoryAppointmentStore:
    """A doctor with a 2026 contract and a Monday 09:00-12:00 block of 30 min slots."""
    s = InMemoryAppointmentStore()
    s.add_doctor(DOCTOR_ID)
    s.add_contract(
        Contract(
            contract_id="c-2026",
            doctor_id=DOCTOR_ID,
            start_date=dt.date(2026, 1, 1),
            end_date=dt.date(2026, 12, 31),
        )
    )
    s.add_template_entry(
        AvailabilityTemplateEntry(
            entry_id="mon-am",
            doctor_id=DOCTOR_ID,
            day_of_week=1,
            start_time=dt.time(9, 0),
            end_time=dt.time(12, 0),
            slot_duration_minutes=30,
        )
    )
    return s


@pytest.fixture
def engine(
    store: InMemoryAppointmentStore, config: SchedulingConfig, clock: FixedClock
) -> AvailabilityEngine:
    return AvailabilityEngine(store, config, clock)


@pytest.fixture
def service(store: InMemoryAppointmentStore, engine: AvailabilityEngine) -> BookingService:
    return BookingService(store, engine, AppointmentStateMachine(reminder_lead_hours=24))
