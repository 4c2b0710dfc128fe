import datetime as dt
from abc import ABC, abstractmethod
from collections.abc import Collection
from contextlib import AbstractContextManager
from typing import Protocol

from agenda.domain.models import (
    Appointment,
    AppointmentState,
    AvailabilityTemplateEntry,
    Contract,
    TimeWindow,
)
from agenda.scheduling.datetime_helpers import resolve_timezone


class AbstractAppointmentStore(ABC):
    """Persistence collaborator for doctors, contracts, templates and appointments."""

    @abstractmethod
    def has_doctor(self, doctor_id: str) -> bool:
        """Return True if the doctor record exists."""

    @abstractmethod
    def list_appointments(
        self,
        doctor_id: str,
        date: dt.date,
        exclude_states: Collection[AppointmentState] | None = None,
    ) -> list[Appointment]:
        """List a doctor's appointments on a date.

        Args:
            doctor_id: The doctor's ID.
            date: The calendar date.
            exclude_states: States to leave out, or None for all states.

        Returns:
            Appointments ordered by start time. Empty list if none.

        Raises:
            StorageUnavailableError: If the store cannot be read.
        """

    @abstractmethod
    def list_patient_appointments(
        self,
        patient_id: str,
        start_date: dt.date,
        end_date: dt.date,
        exclude_states: Collection[AppointmentState] | None = None,
    ) -> list[Appointment]:
        """List a patient's appointments with any doctor between two dates, inclusive.

        Returns:
            Appointments ordered by date and start time. Empty list if none.
        """

    @abstractmethod
    def find_replacement(self, appointment_id: str) -> Appointment | None:
        """Return the appointment booked as a reschedule of ``appointment_id``, if any."""

    @abstractmethod
    def list_active_contracts(self, doctor_id: str) -> list[Contract]:
        """List the doctor's contracts flagged active, regardless of date."""

    @abstractmethod
    def list_active_template_entries(
        self, doctor_id: str, day_of_week: int
    ) -> list[AvailabilityTemplateEntry]:
        """List the doctor's active template entries for a weekday (0=Sunday)."""

    @abstractmethod
    def get_appointment(self, appointment_id: str) -> Appointment:
        """Fetch an appointment by ID.

        Raises:
            AppointmentNotFoundError: If no appointment has that ID.
        """

    @abstractmethod
    def insert_appointment(self, appointment: Appointment) -> str:
        """Persist a new appointment and return its assigned ID.

        Must be called inside ``transaction`` for the appointment's doctor and
        date after re-checking conflicts against freshly read data.
        """

    @abstractmethod
    def update_appointment_state(
        self, appointment_id: str, new_state: AppointmentState, notes: str | None = None
    ) -> Appointment:
        """Set an appointment's state, optionally replacing its notes.

        Raises:
            AppointmentNotFoundError: If no appointment has that ID.
        """

    @abstractmethod
    def update_appointment_window(
        self, appointment_id: str, date: dt.date, window: TimeWindow
    ) -> Appointment:
        """Move an appointment to a new date and window.

        Raises:
            AppointmentNotFoundError: If no appointment has that ID.
        """

    @abstractmethod
    def transaction(self, doctor_id: str, date: dt.date) -> AbstractContextManager[None]:
        """Serialize booking writes for one doctor.

        Reads and writes issued inside the block see each other and no other
        writer can commit a booking for the same doctor, on any date, until the
        block exits. Changes are rolled back if the block raises. ``date`` is
        informational; adapters may lock more widely than the doctor.
        """

    @abstractmethod
    def add_doctor(self, doctor_id: str) -> None:
        """Register a doctor ID (doctor records are owned elsewhere)."""

    @abstractmethod
    def list_contracts(self, doctor_id: str) -> list[Contract]:
        """List all of the doctor's contracts, active or not."""

    @abstractmethod
    def add_contract(self, contract: Contract) -> str:
        """Persist a contract and return its ID."""

    @abstractmethod
    def add_template_entry(self, entry: AvailabilityTemplateEntry) -> str:
        """Persist a template entry and return its ID."""

    @abstractmethod
    def deactivate_template_entry(self, entry_id: str) -> None:
        """Mark a template entry inactive."""

    @abstractmethod
    def close(self) -> None:
        """Release resources held by this store."""


class Clock(Protocol):
    """Source of the current clinic-local time."""

    def now(self) -> dt.datetime:
        """Return the current naive clinic-local datetime."""
        ...


class SystemClock:
    """Wall clock converted to the clinic's timezone."""

    def __init__(self, clinic_timezone: str = "America/Argentina/Buenos_Aires") -> None:
        self._tz = resolve_timezone(clinic_timezone)

    def now(self) -> dt.datetime:
        return dt.datetime.now(self._tz).replace(tzinfo=None)


class FixedClock:
    """Clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, moment: dt.datetime) -> None:
        self._moment = moment

    def now(self) -> dt.datetime:
        return self._moment

    def advance(self, delta: dt.timedelta) -> None:
        self._moment += delta
