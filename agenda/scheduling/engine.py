import datetime as dt

from loguru import logger

from agenda.config import SchedulingConfig
from agenda.domain.exceptions import DoctorNotFoundError
from agenda.domain.models import (
    ACTIVE_STATES,
    Appointment,
    AppointmentState,
    FailureReason,
    TimeWindow,
    ValidationVerdict,
)
from agenda.scheduling.business_rules import BusinessRuleValidator
from agenda.scheduling.conflicts import ConflictDetector
from agenda.scheduling.contracts import ContractValidator
from agenda.scheduling.datetime_helpers import day_of_week, month_bounds
from agenda.scheduling.patient_limits import PatientLimitValidator
from agenda.scheduling.templates import fits_template, generate_slots
from agenda.store.ports import AbstractAppointmentStore, Clock

_INACTIVE_STATES = frozenset(AppointmentState) - ACTIVE_STATES


class AvailabilityEngine:
    """Lists bookable slots and validates single booking candidates.

    Both paths run the same rules against the same data, so any slot
    returned by ``list_available_slots`` is accepted by ``validate_booking``
    at the same instant.
    """

    def __init__(
        self,
        store: AbstractAppointmentStore,
        config: SchedulingConfig,
        clock: Clock,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock
        self.contracts = ContractValidator()
        self.business_rules = BusinessRuleValidator(config)
        self.conflicts = ConflictDetector(
            min_gap_minutes=config.min_gap_minutes,
            daily_limit=config.daily_limit,
        )
        self.patient_limits = PatientLimitValidator(
            daily_limit=config.patient_daily_limit,
            monthly_limit=config.patient_monthly_limit,
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    def _require_doctor(self, doctor_id: str) -> None:
        if not self._store.has_doctor(doctor_id):
            raise DoctorNotFoundError(doctor_id)

    def _blocking(
        self, doctor_id: str, date: dt.date, exclude_appointment_id: str | None = None
    ) -> list[Appointment]:
        existing = self._store.list_appointments(doctor_id, date, exclude_states=_INACTIVE_STATES)
        return self.conflicts.blocking(existing, exclude_appointment_id)

    def list_available_slots(self, doctor_id: str, date: dt.date) -> list[TimeWindow]:
        """Slots a booking would be accepted for right now, ordered by start."""
        self._require_doctor(doctor_id)

        contract = self.contracts.check(self._store.list_active_contracts(doctor_id), date)
        if not contract.accepted:
            logger.debug(
                "No slots for doctor {} on {}: {}", doctor_id, date, contract.failure_reason
            )
            return []

        day = self.business_rules.validate_date(date)
        if not day.accepted:
            logger.debug("No slots for doctor {} on {}: {}", doctor_id, date, day.failure_reason)
            return []

        entries = self._store.list_active_template_entries(doctor_id, day_of_week(date))
        candidates = generate_slots(entries, date)
        if not candidates:
            return []

        blocking = self._blocking(doctor_id, date)
        if not self.conflicts.check_daily_limit(blocking).accepted:
            logger.debug("No slots for doctor {} on {}: daily limit reached", doctor_id, date)
            return []

        now = self._clock.now()
        available = [
            slot
            for slot in candidates
            if self.business_rules.validate(slot, date, now).accepted
            and self.conflicts.check_window(blocking, slot).accepted
        ]
        logger.debug(
            "Doctor {} on {}: {} of {} template slots available",
            doctor_id,
            date,
            len(available),
            len(candidates),
        )
        return available

    def validate_booking(
        self,
        doctor_id: str,
        date: dt.date,
        window: TimeWindow,
        exclude_appointment_id: str | None = None,
        emergency_override: bool = False,
    ) -> ValidationVerdict:
        """Run contract, availability, business and conflict rules for one candidate.

        Args:
            doctor_id: The doctor being booked.
            date: The appointment date.
            window: The proposed ``[start, end)`` window.
            exclude_appointment_id: An appointment to ignore when checking
                conflicts, used when re-validating an edit. If that appointment
                is active and already holds exactly this date and window, the
                candidate is accepted without re-running any rule.
            emergency_override: Waives the minimum-notice rule.

        Returns:
            The first failing verdict, or an accepted verdict.

        Raises:
            DoctorNotFoundError: If the doctor record does not exist.
            StorageUnavailableError: If the store cannot be read.
        """
        self._require_doctor(doctor_id)

        if exclude_appointment_id is not None and self._holds_window(
            doctor_id, date, window, exclude_appointment_id
        ):
            logger.debug("Appointment {} keeps its window {}", exclude_appointment_id, window)
            return ValidationVerdict.ok()

        verdict = self.contracts.check(self._store.list_active_contracts(doctor_id), date)
        if not verdict.accepted:
            return verdict

        if self._config.enforce_template:
            entries = self._store.list_active_template_entries(doctor_id, day_of_week(date))
            if not fits_template(entries, date, window):
                return ValidationVerdict.reject(
                    FailureReason.OUTSIDE_AVAILABILITY,
                    f"{window} is outside the doctor's availability for {date:%A}",
                )

        verdict = self.business_rules.validate(
            window, date, self._clock.now(), emergency_override=emergency_override
        )
        if not verdict.accepted:
            return verdict

        return self.conflicts.check(self._blocking(doctor_id, date), window, exclude_appointment_id)

    def _holds_window(
        self, doctor_id: str, date: dt.date, window: TimeWindow, appointment_id: str
    ) -> bool:
        return any(
            a.appointment_id == appointment_id and a.window == window
            for a in self._blocking(doctor_id, date)
        )

    def check_patient_limits(
        self, patient_id: str, date: dt.date, exclude_appointment_id: str | None = None
    ) -> ValidationVerdict:
        """Per-patient daily and monthly caps, counted across all doctors."""
        first, last = month_bounds(date)
        bookings = self._store.list_patient_appointments(
            patient_id, first, last, exclude_states=_INACTIVE_STATES
        )
        return self.patient_limits.check(bookings, date, exclude_appointment_id)

    def recheck_conflicts(
        self,
        doctor_id: str,
        date: dt.date,
        window: TimeWindow,
        exclude_appointment_id: str | None = None,
    ) -> ValidationVerdict:
        """Conflict rules only, against freshly read bookings (commit-time re-check)."""
        return self.conflicts.check(self._blocking(doctor_id, date), window, exclude_appointment_id)

    def suggest_alternative_slots(
        self,
        doctor_id: str,
        date: dt.date,
        requested_start: dt.time,
        window_minutes: int | None = None,
    ) -> list[TimeWindow]:
        """Available slots starting near ``requested_start``, nearest first."""
        limit = self._config.suggestion_window_minutes if window_minutes is None else window_minutes
        requested = requested_start.hour * 60 + requested_start.minute

        nearby = [
            slot
            for slot in self.list_available_slots(doctor_id, date)
            if abs(slot.start_minute - requested) <= limit
        ]
        return sorted(nearby, key=lambda s: (abs(s.start_minute - requested), s.start_minute))
