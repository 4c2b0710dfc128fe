import datetime as dt
import sqlite3
import threading
from collections.abc import Collection, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from loguru import logger

from agenda.domain.exceptions import (
    AppointmentNotFoundError,
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
from agenda.store.adapters.memory import generate_id
from agenda.store.ports import AbstractAppointmentStore

_SCHEMA = """
CREATE TABLE IF NOT EXISTS doctors (
    id TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS contracts (
    id TEXT PRIMARY KEY,
    doctor_id TEXT NOT NULL REFERENCES doctors(id),
    start_date TEXT NOT NULL,
    end_date TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    contract_type TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_contracts_doctor ON contracts(doctor_id);

CREATE TABLE IF NOT EXISTS template_entries (
    id TEXT PRIMARY KEY,
    doctor_id TEXT NOT NULL REFERENCES doctors(id),
    day_of_week INTEGER NOT NULL CHECK(day_of_week BETWEEN 0 AND 6),
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    slot_duration_minutes INTEGER NOT NULL CHECK(slot_duration_minutes > 0),
    active INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_template_doctor_day ON template_entries(doctor_id, day_of_week);

CREATE TABLE IF NOT EXISTS appointments (
    id TEXT PRIMARY KEY,
    doctor_id TEXT NOT NULL REFERENCES doctors(id),
    patient_id TEXT NOT NULL,
    date TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    duration_minutes INTEGER NOT NULL,
    state TEXT NOT NULL CHECK(state IN (
        'scheduled', 'confirmed', 'completed', 'cancelled', 'no_show', 'rescheduled'
    )),
    notes TEXT NOT NULL DEFAULT '',
    rescheduled_from_id TEXT REFERENCES appointments(id)
);
CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date ON appointments(doctor_id, date);
CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, date);
CREATE INDEX IF NOT EXISTS idx_appointments_rescheduled_from ON appointments(rescheduled_from_id);
"""


def _fmt_time(value: dt.time) -> str:
    return value.strftime("%H:%M")


def _row_to_appointment(row: sqlite3.Row) -> Appointment:
    return Appointment(
        appointment_id=row["id"],
        doctor_id=row["doctor_id"],
        patient_id=row["patient_id"],
        date=dt.date.fromisoformat(row["date"]),
        start_time=dt.time.fromisoformat(row["start_time"]),
        end_time=dt.time.fromisoformat(row["end_time"]),
        duration_minutes=row["duration_minutes"],
        state=AppointmentState(row["state"]),
        notes=row["notes"],
        rescheduled_from_id=row["rescheduled_from_id"],
    )


def _row_to_contract(row: sqlite3.Row) -> Contract:
    return Contract(
        contract_id=row["id"],
        doctor_id=row["doctor_id"],
        start_date=dt.date.fromisoformat(row["start_date"]),
        end_date=dt.date.fromisoformat(row["end_date"]) if row["end_date"] else None,
        active=bool(row["active"]),
        contract_type=row["contract_type"],
    )


def _row_to_entry(row: sqlite3.Row) -> AvailabilityTemplateEntry:
    return AvailabilityTemplateEntry(
        entry_id=row["id"],
        doctor_id=row["doctor_id"],
        day_of_week=row["day_of_week"],
        start_time=dt.time.fromisoformat(row["start_time"]),
        end_time=dt.time.fromisoformat(row["end_time"]),
        slot_duration_minutes=row["slot_duration_minutes"],
        active=bool(row["active"]),
    )


class SQLiteAppointmentStore(AbstractAppointmentStore):
    """SQLite-backed store.

    ``transaction`` opens ``BEGIN IMMEDIATE``, which takes the database write
    lock up front: a second writer (thread or process) waits until the first
    commits, so its conflict re-check sees the committed booking.
    """

    def __init__(self, db_path: str = ":memory:", *, busy_timeout_seconds: float = 5.0) -> None:
        self.db_path = db_path
        try:
            self.conn = sqlite3.connect(
                db_path,
                timeout=busy_timeout_seconds,
                isolation_level=None,
                check_same_thread=False,
            )
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA foreign_keys = ON")
            self.conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Cannot open SQLite store at {db_path}: {exc}") from exc

        # One connection is shared; statements and transactions take turns.
        self._lock = threading.RLock()
        self._in_transaction = threading.local()

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self.conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise StorageUnavailableError(f"SQLite statement failed: {exc}") from exc

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._execute(sql, params).fetchall()

    # -- reads -----------------------------------------------------------

    def has_doctor(self, doctor_id: str) -> bool:
        return bool(self._fetchall("SELECT 1 FROM doctors WHERE id = ?", (doctor_id,)))

    def list_appointments(
        self,
        doctor_id: str,
        date: dt.date,
        exclude_states: Collection[AppointmentState] | None = None,
    ) -> list[Appointment]:
        query = "SELECT * FROM appointments WHERE doctor_id = ? AND date = ?"
        params: list[Any] = [doctor_id, date.isoformat()]

        if exclude_states:
            placeholders = ", ".join("?" for _ in exclude_states)
            query += f" AND state NOT IN ({placeholders})"
            params.extend(s.value for s in exclude_states)

        query += " ORDER BY start_time, end_time"
        return [_row_to_appointment(row) for row in self._fetchall(query, params)]

    def list_patient_appointments(
        self,
        patient_id: str,
        start_date: dt.date,
        end_date: dt.date,
        exclude_states: Collection[AppointmentState] | None = None,
    ) -> list[Appointment]:
        query = "SELECT * FROM appointments WHERE patient_id = ? AND date BETWEEN ? AND ?"
        params: list[Any] = [patient_id, start_date.isoformat(), end_date.isoformat()]

        if exclude_states:
            placeholders = ", ".join("?" for _ in exclude_states)
            query += f" AND state NOT IN ({placeholders})"
            params.extend(s.value for s in exclude_states)

        query += " ORDER BY date, start_time"
        return [_row_to_appointment(row) for row in self._fetchall(query, params)]

    def find_replacement(self, appointment_id: str) -> Appointment | None:
        rows = self._fetchall(
            "SELECT * FROM appointments WHERE rescheduled_from_id = ? LIMIT 1", (appointment_id,)
        )
        return _row_to_appointment(rows[0]) if rows else None

    def list_contracts(self, doctor_id: str) -> list[Contract]:
        rows = self._fetchall(
            "SELECT * FROM contracts WHERE doctor_id = ? ORDER BY start_date", (doctor_id,)
        )
        return [_row_to_contract(row) for row in rows]

    def list_active_contracts(self, doctor_id: str) -> list[Contract]:
        rows = self._fetchall(
            "SELECT * FROM contracts WHERE doctor_id = ? AND active = 1 ORDER BY start_date",
            (doctor_id,),
        )
        return [_row_to_contract(row) for row in rows]

    def list_active_template_entries(
        self, doctor_id: str, day_of_week: int
    ) -> list[AvailabilityTemplateEntry]:
        rows = self._fetchall(
            """SELECT * FROM template_entries
               WHERE doctor_id = ? AND day_of_week = ? AND active = 1
               ORDER BY start_time""",
            (doctor_id, day_of_week),
        )
        return [_row_to_entry(row) for row in rows]

    def get_appointment(self, appointment_id: str) -> Appointment:
        rows = self._fetchall("SELECT * FROM appointments WHERE id = ?", (appointment_id,))
        if not rows:
            raise AppointmentNotFoundError(appointment_id)
        return _row_to_appointment(rows[0])

    # -- writes ----------------------------------------------------------

    def insert_appointment(self, appointment: Appointment) -> str:
        appointment_id = appointment.appointment_id or generate_id("appt")
        self._execute(
            """INSERT INTO appointments
               (id, doctor_id, patient_id, date, start_time, end_time,
                duration_minutes, state, notes, rescheduled_from_id)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                appointment_id,
                appointment.doctor_id,
                appointment.patient_id,
                appointment.date.isoformat(),
                _fmt_time(appointment.start_time),
                _fmt_time(appointment.end_time),
                appointment.duration_minutes,
                appointment.state.value,
                appointment.notes,
                appointment.rescheduled_from_id,
            ),
        )
        return appointment_id

    def update_appointment_state(
        self, appointment_id: str, new_state: AppointmentState, notes: str | None = None
    ) -> Appointment:
        with self._lock:
            if notes is None:
                cursor = self._execute(
                    "UPDATE appointments SET state = ? WHERE id = ?",
                    (new_state.value, appointment_id),
                )
            else:
                cursor = self._execute(
                    "UPDATE appointments SET state = ?, notes = ? WHERE id = ?",
                    (new_state.value, notes, appointment_id),
                )
            if cursor.rowcount == 0:
                raise AppointmentNotFoundError(appointment_id)
            return self.get_appointment(appointment_id)

    def update_appointment_window(
        self, appointment_id: str, date: dt.date, window: TimeWindow
    ) -> Appointment:
        with self._lock:
            cursor = self._execute(
                """UPDATE appointments
                   SET date = ?, start_time = ?, end_time = ?, duration_minutes = ?
                   WHERE id = ?""",
                (
                    date.isoformat(),
                    _fmt_time(window.start),
                    _fmt_time(window.end),
                    window.duration_minutes,
                    appointment_id,
                ),
            )
            if cursor.rowcount == 0:
                raise AppointmentNotFoundError(appointment_id)
            return self.get_appointment(appointment_id)

    @contextmanager
    def transaction(self, doctor_id: str, date: dt.date) -> Iterator[None]:
        with self._lock:
            if getattr(self._in_transaction, "active", False):
                yield
                return

            self._execute("BEGIN IMMEDIATE")
            self._in_transaction.active = True
            try:
                yield
            except BaseException:
                self._execute("ROLLBACK")
                logger.debug("Rolled back booking transaction for doctor {} on {}", doctor_id, date)
                raise
            else:
                self._execute("COMMIT")
            finally:
                self._in_transaction.active = False

    # -- administration --------------------------------------------------

    def add_doctor(self, doctor_id: str) -> None:
        self._execute("INSERT OR IGNORE INTO doctors (id) VALUES (?)", (doctor_id,))

    def add_contract(self, contract: Contract) -> str:
        contract_id = contract.contract_id or generate_id("contract")
        self._execute(
            """INSERT INTO contracts (id, doctor_id, start_date, end_date, active, contract_type)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                contract_id,
                contract.doctor_id,
                contract.start_date.isoformat(),
                contract.end_date.isoformat() if contract.end_date else None,
                int(contract.active),
                contract.contract_type,
            ),
        )
        return contract_id

    def add_template_entry(self, entry: AvailabilityTemplateEntry) -> str:
        entry_id = entry.entry_id or generate_id("tpl")
        self._execute(
            """INSERT INTO template_entries
               (id, doctor_id, day_of_week, start_time, end_time, slot_duration_minutes, active)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                entry_id,
                entry.doctor_id,
                entry.day_of_week,
                _fmt_time(entry.start_time),
                _fmt_time(entry.end_time),
                entry.slot_duration_minutes,
                int(entry.active),
            ),
        )
        return entry_id

    def deactivate_template_entry(self, entry_id: str) -> None:
        cursor = self._execute("UPDATE template_entries SET active = 0 WHERE id = ?", (entry_id,))
        if cursor.rowcount == 0:
            raise TemplateEntryNotFoundError(entry_id)

    def close(self) -> None:
        with self._lock:
            self.conn.close()
