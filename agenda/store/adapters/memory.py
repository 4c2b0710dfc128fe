import datetime as dt
import threading
import uuid
from collections.abc import Collection, Iterator
from contextlib import contextmanager

from agenda.domain.exceptions import (
    AppointmentNotFoundError,
    BookingError,
    StorageUnavailableError,
    TemplateEntryNotFoundError,
)
from agenda.domain.models import (
    Appointment,
    AppointmentState,
    AvailabilityTemplateEntry,
    Contract,
    TimeWindow,
)
from agenda.store.ports import AbstractAppointmentStore


def generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class InMemoryAppointmentStore(AbstractAppointmentStore):
    """Thread-safe in-memory store.

    ``transaction`` takes one of a fixed pool of locks chosen by doctor, so all
    booking writes for a doctor serialize whatever the date, and undoes the
    block's writes if it raises.

    Set ``read_error`` or ``write_error`` to make the corresponding calls
    raise. After calls, ``inserted`` lists every appointment ID written.
    """

    def __init__(self, lock_stripes: int = 64) -> None:
        self.doctors: set[str] = set()
        self.contracts: dict[str, Contract] = {}
        self.template_entries: dict[str, AvailabilityTemplateEntry] = {}
        self.appointments: dict[str, Appointment] = {}
        self.inserted: list[str] = []
        self.closed: bool = False

        self.read_error: Exception | None = None
        self.write_error: Exception | None = None

        self._data_lock = threading.RLock()
        self._stripes = [threading.Lock() for _ in range(max(1, lock_stripes))]
        self._local = threading.local()

    # -- reads -----------------------------------------------------------

    def _check_read(self) -> None:
        if self.closed:
            raise StorageUnavailableError("Store is closed")
        if self.read_error:
            raise self.read_error

    def has_doctor(self, doctor_id: str) -> bool:
        self._check_read()
        return doctor_id in self.doctors

    def list_appointments(
        self,
        doctor_id: str,
        date: dt.date,
        exclude_states: Collection[AppointmentState] | None = None,
    ) -> list[Appointment]:
        self._check_read()
        excluded = set(exclude_states or ())
        with self._data_lock:
            found = [
                a
                for a in self.appointments.values()
                if a.doctor_id == doctor_id and a.date == date and a.state not in excluded
            ]
        return sorted(found, key=lambda a: (a.start_time, a.end_time))

    def list_patient_appointments(
        self,
        patient_id: str,
        start_date: dt.date,
        end_date: dt.date,
        exclude_states: Collection[AppointmentState] | None = None,
    ) -> list[Appointment]:
        self._check_read()
        excluded = set(exclude_states or ())
        with self._data_lock:
            found = [
                a
                for a in self.appointments.values()
                if a.patient_id == patient_id
                and start_date <= a.date <= end_date
                and a.state not in excluded
            ]
        return sorted(found, key=lambda a: (a.date, a.start_time))

    def find_replacement(self, appointment_id: str) -> Appointment | None:
        self._check_read()
        with self._data_lock:
            return next(
                (a for a in self.appointments.values() if a.rescheduled_from_id == appointment_id),
                None,
            )

    def list_contracts(self, doctor_id: str) -> list[Contract]:
        self._check_read()
        with self._data_lock:
            return sorted(
                (c for c in self.contracts.values() if c.doctor_id == doctor_id),
                key=lambda c: c.start_date,
            )

    def list_active_contracts(self, doctor_id: str) -> list[Contract]:
        return [c for c in self.list_contracts(doctor_id) if c.active]

    def list_active_template_entries(
        self, doctor_id: str, day_of_week: int
    ) -> list[AvailabilityTemplateEntry]:
        self._check_read()
        with self._data_lock:
            found = [
                e
                for e in self.template_entries.values()
                if e.doctor_id == doctor_id and e.day_of_week == day_of_week and e.active
            ]
        return sorted(found, key=lambda e: e.start_time)

    def get_appointment(self, appointment_id: str) -> Appointment:
        self._check_read()
        with self._data_lock:
            try:
                return self.appointments[appointment_id]
            except KeyError:
                raise AppointmentNotFoundError(appointment_id) from None

    # -- writes ----------------------------------------------------------

    def _check_write(self) -> None:
        if self.closed:
            raise StorageUnavailableError("Store is closed")
        if self.write_error:
            raise self.write_error

    def _journal(self) -> list[tuple[str, Appointment | None]] | None:
        return getattr(self._local, "journal", None)

    def _put_appointment(self, appointment_id: str, appointment: Appointment) -> None:
        journal = self._journal()
        if journal is not None:
            journal.append((appointment_id, self.appointments.get(appointment_id)))
        self.appointments[appointment_id] = appointment

    def insert_appointment(self, appointment: Appointment) -> str:
        self._check_write()
        appointment_id = appointment.appointment_id or generate_id("appt")
        with self._data_lock:
            if appointment_id in self.appointments:
                raise BookingError("duplicate appointment id", appointment_id)
            self._put_appointment(
                appointment_id, appointment.model_copy(update={"appointment_id": appointment_id})
            )
            self.inserted.append(appointment_id)
        return appointment_id

    def update_appointment_state(
        self, appointment_id: str, new_state: AppointmentState, notes: str | None = None
    ) -> Appointment:
        self._check_write()
        with self._data_lock:
            current = self.get_appointment(appointment_id)
            changes: dict[str, object] = {"state": new_state}
            if notes is not None:
                changes["notes"] = notes
            updated = current.model_copy(update=changes)
            self._put_appointment(appointment_id, updated)
        return updated

    def update_appointment_window(
        self, appointment_id: str, date: dt.date, window: TimeWindow
    ) -> Appointment:
        self._check_write()
        with self._data_lock:
            current = self.get_appointment(appointment_id)
            updated = Appointment(
                **current.model_dump(
                    exclude={"date", "start_time", "end_time", "duration_minutes"}
                ),
                date=date,
                start_time=window.start,
                end_time=window.end,
                duration_minutes=window.duration_minutes,
            )
            self._put_appointment(appointment_id, updated)
        return updated

    @contextmanager
    def transaction(self, doctor_id: str, date: dt.date) -> Iterator[None]:
        with self._stripes[hash(doctor_id) % len(self._stripes)]:
            self._local.journal = []
            try:
                yield
            except BaseException:
                with self._data_lock:
                    for appointment_id, previous in reversed(self._local.journal):
                        if previous is None:
                            self.appointments.pop(appointment_id, None)
                            if appointment_id in self.inserted:
                                self.inserted.remove(appointment_id)
                        else:
                            self.appointments[appointment_id] = previous
                raise
            finally:
                self._local.journal = None

    # -- administration --------------------------------------------------

    def add_doctor(self, doctor_id: str) -> None:
        self._check_write()
        with self._data_lock:
            self.doctors.add(doctor_id)

    def add_contract(self, contract: Contract) -> str:
        self._check_write()
        contract_id = contract.contract_id or generate_id("contract")
        with self._data_lock:
            self.contracts[contract_id] = contract.model_copy(update={"contract_id": contract_id})
        return contract_id

    def add_template_entry(self, entry: AvailabilityTemplateEntry) -> str:
        self._check_write()
        entry_id = entry.entry_id or generate_id("tpl")
        with self._data_lock:
            self.template_entries[entry_id] = entry.model_copy(update={"entry_id": entry_id})
        return entry_id

    def deactivate_template_entry(self, entry_id: str) -> None:
        self._check_write()
        with self._data_lock:
            entry = self.template_entries.get(entry_id)
            if entry is None:
                raise TemplateEntryNotFoundError(entry_id)
            self.template_entries[entry_id] = entry.model_copy(update={"active": False})

    def close(self) -> None:
        self.closed = True
