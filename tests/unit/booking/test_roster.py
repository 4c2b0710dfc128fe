import datetime as dt

import pytest

from agenda.booking.roster import RosterService
from agenda.booking.service import BookingService
from agenda.domain.exceptions import DoctorNotFoundError, TemplateEntryNotFoundError
from agenda.domain.models import AvailabilityTemplateEntry, Contract, FailureReason
from agenda.store.adapters.memory import InMemoryAppointmentStore


@pytest.fixture
def roster(store: InMemoryAppointmentStore) -> RosterService:
    return RosterService(store)


def afternoon(doctor_id: str = "doc-1") -> AvailabilityTemplateEntry:
    return AvailabilityTemplateEntry(
        doctor_id=doctor_id,
        day_of_week=1,
        start_time=dt.time(14, 0),
        end_time=dt.time(16, 0),
        slot_duration_minutes=60,
    )


class TestRegisterDoctor:
    def test_registers(self, roster: RosterService, store: InMemoryAppointmentStore) -> None:
        roster.register_doctor("doc-2")

        assert store.has_doctor("doc-2")


class TestAddContract:
    def test_accepts_contract_after_existing_one(
        self, roster: RosterService, store: InMemoryAppointmentStore
    ) -> None:
        verdict, contract_id = roster.add_contract(
            Contract(doctor_id="doc-1", start_date=dt.date(2027, 1, 1))
        )

        assert verdict.accepted
        assert contract_id in store.contracts

    def test_rejects_overlapping_contract(
        self, roster: RosterService, store: InMemoryAppointmentStore
    ) -> None:
        verdict, contract_id = roster.add_contract(
            Contract(doctor_id="doc-1", start_date=dt.date(2026, 12, 1))
        )

        assert verdict.failure_reason == FailureReason.CONFLICTING_CONTRACTS
        assert contract_id is None
        assert list(store.contracts) == ["c-2026"]

    def test_unknown_doctor(self, roster: RosterService) -> None:
        with pytest.raises(DoctorNotFoundError):
            roster.add_contract(Contract(doctor_id="doc-404", start_date=dt.date(2026, 1, 1)))


class TestTemplateEntries:
    def test_new_entry_opens_slots(
        self, roster: RosterService, service: BookingService, monday: dt.date
    ) -> None:
        roster.add_template_entry(afternoon())

        slots = [str(s) for s in service.list_available_slots("doc-1", monday)]

        assert slots[-2:] == ["14:00-15:00", "15:00-16:00"]

    def test_deactivated_entry_closes_slots(
        self, roster: RosterService, service: BookingService, monday: dt.date
    ) -> None:
        entry_id = roster.add_template_entry(afternoon())
        roster.deactivate_template_entry(entry_id)

        assert len(service.list_available_slots("doc-1", monday)) == 6

    def test_unknown_doctor(self, roster: RosterService) -> None:
        with pytest.raises(DoctorNotFoundError):
            roster.add_template_entry(afternoon("doc-404"))

    def test_deactivate_unknown_entry(self, roster: RosterService) -> None:
        with pytest.raises(TemplateEntryNotFoundError, match="tpl-404"):
            roster.deactivate_template_entry("tpl-404")
