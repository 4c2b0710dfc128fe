import datetime as dt

from loguru import logger

from agenda.domain.exceptions import AgendaError, BookingError, StorageUnavailableError
from agenda.domain.models import (
    ACTIVE_STATES,
    Appointment,
    AppointmentState,
    BookingOutcome,
    Effect,
    EffectKind,
    FailureReason,
    TimeWindow,
    TransitionOutcome,
    ValidationVerdict,
)
from agenda.scheduling.engine import AvailabilityEngine
from agenda.scheduling.state_machine import AppointmentStateMachine
from agenda.store.ports import AbstractAppointmentStore


def _already_rescheduled(appointment_id: str, replacement: Appointment) -> ValidationVerdict:
    return ValidationVerdict.reject(
        FailureReason.INVALID_TRANSITION,
        f"appointment {appointment_id} was already rescheduled as {replacement.appointment_id}",
    )


class BookingService:
    """Books and transitions appointments with validate-then-reserve semantics.

    A booking is validated against a snapshot, then re-checked for conflicts
    inside ``store.transaction`` immediately before the write. Losing a race
    surfaces as the re-check's verdict (``OVERLAP_CONFLICT`` for overlapping
    windows); callers should pick another slot rather than retry the write.
    """

    def __init__(
        self,
        store: AbstractAppointmentStore,
        engine: AvailabilityEngine,
        state_machine: AppointmentStateMachine | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._machine = state_machine or AppointmentStateMachine()

    def list_available_slots(self, doctor_id: str, date: dt.date) -> list[TimeWindow]:
        return self._engine.list_available_slots(doctor_id, date)

    def suggest_alternatives(
        self, doctor_id: str, date: dt.date, requested_start: dt.time
    ) -> list[TimeWindow]:
        return self._engine.suggest_alternative_slots(doctor_id, date, requested_start)

    def validate_booking(
        self,
        doctor_id: str,
        date: dt.date,
        window: TimeWindow,
        exclude_appointment_id: str | None = None,
        emergency_override: bool = False,
    ) -> ValidationVerdict:
        return self._engine.validate_booking(
            doctor_id, date, window, exclude_appointment_id, emergency_override
        )

    def book(
        self,
        doctor_id: str,
        patient_id: str,
        date: dt.date,
        window: TimeWindow,
        *,
        emergency_override: bool = False,
        actor_id: str | None = None,
        notes: str = "",
        rescheduled_from_id: str | None = None,
    ) -> BookingOutcome:
        """Validate and reserve a new ``SCHEDULED`` appointment."""
        logger.info("Booking request: doctor={}, date={}, window={}", doctor_id, date, window)

        verdict = self._engine.validate_booking(
            doctor_id, date, window, emergency_override=emergency_override
        )
        if verdict.accepted:
            verdict = self._engine.check_patient_limits(patient_id, date)
        if not verdict.accepted:
            logger.warning(
                "Booking rejected for doctor {} on {} {}: {}",
                doctor_id,
                date,
                window,
                verdict.failure_reason.value if verdict.failure_reason else "",
            )
            return BookingOutcome(verdict=verdict)

        candidate = Appointment(
            doctor_id=doctor_id,
            patient_id=patient_id,
            date=date,
            start_time=window.start,
            end_time=window.end,
            duration_minutes=window.duration_minutes,
            notes=notes,
            rescheduled_from_id=rescheduled_from_id,
        )

        try:
            with self._store.transaction(doctor_id, date):
                if rescheduled_from_id is not None:
                    replacement = self._store.find_replacement(rescheduled_from_id)
                    if replacement is not None:
                        return BookingOutcome(
                            verdict=_already_rescheduled(rescheduled_from_id, replacement)
                        )
                recheck = self._engine.recheck_conflicts(doctor_id, date, window)
                if recheck.accepted:
                    recheck = self._engine.check_patient_limits(patient_id, date)
                if not recheck.accepted:
                    logger.warning(
                        "Booking lost commit-time re-check for doctor {} on {} {}: {}",
                        doctor_id,
                        date,
                        window,
                        recheck.failure_reason.value if recheck.failure_reason else "",
                    )
                    return BookingOutcome(verdict=recheck)
                appointment_id = self._store.insert_appointment(candidate)
        except AgendaError:
            raise
        except Exception as exc:
            raise BookingError(reason=str(exc)) from exc

        stored = candidate.model_copy(update={"appointment_id": appointment_id})
        effects = self._machine.on_created(stored, self._engine.clock.now(), actor_id)
        logger.info("Appointment booked: id={}", appointment_id)
        return BookingOutcome(
            verdict=ValidationVerdict.ok(), appointment=stored, effects=tuple(effects)
        )

    def change_state(
        self,
        appointment_id: str,
        target: AppointmentState,
        *,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> TransitionOutcome:
        """Apply a lifecycle transition and persist the new state.

        The appointment is re-read inside the store transaction so two
        concurrent transitions cannot both act on the same prior state.
        """
        appointment = self._store.get_appointment(appointment_id)

        try:
            with self._store.transaction(appointment.doctor_id, appointment.date):
                current = self._store.get_appointment(appointment_id)
                outcome = self._machine.transition(
                    current, target, self._engine.clock.now(), actor_id=actor_id, reason=reason
                )
                if outcome.verdict.accepted and outcome.new_state != outcome.previous_state:
                    notes = None
                    if target is AppointmentState.CANCELLED and reason:
                        prefix = f"{current.notes}\n" if current.notes else ""
                        notes = f"{prefix}Cancelled: {reason}"
                    self._store.update_appointment_state(appointment_id, outcome.new_state, notes)
        except AgendaError:
            raise
        except Exception as exc:
            raise StorageUnavailableError(f"State change failed: {exc}") from exc

        if outcome.verdict.accepted:
            logger.info(
                "Appointment {} moved {} -> {}",
                appointment_id,
                outcome.previous_state.value,
                outcome.new_state.value,
            )
        return outcome

    def confirm(self, appointment_id: str, *, actor_id: str | None = None) -> TransitionOutcome:
        return self.change_state(appointment_id, AppointmentState.CONFIRMED, actor_id=actor_id)

    def cancel(
        self, appointment_id: str, *, actor_id: str | None = None, reason: str | None = None
    ) -> TransitionOutcome:
        return self.change_state(
            appointment_id, AppointmentState.CANCELLED, actor_id=actor_id, reason=reason
        )

    def complete(self, appointment_id: str, *, actor_id: str | None = None) -> TransitionOutcome:
        return self.change_state(appointment_id, AppointmentState.COMPLETED, actor_id=actor_id)

    def mark_no_show(
        self, appointment_id: str, *, actor_id: str | None = None
    ) -> TransitionOutcome:
        return self.change_state(appointment_id, AppointmentState.NO_SHOW, actor_id=actor_id)

    def reschedule(
        self,
        appointment_id: str,
        date: dt.date,
        window: TimeWindow,
        *,
        emergency_override: bool = False,
        actor_id: str | None = None,
    ) -> BookingOutcome:
        """Book a replacement for a cancelled appointment.

        The cancelled appointment is left untouched; the replacement is a new
        ``SCHEDULED`` appointment whose ``rescheduled_from_id`` points back.
        A cancelled appointment can be rescheduled once; later attempts are
        rejected with ``INVALID_TRANSITION``.
        """
        original = self._store.get_appointment(appointment_id)
        outcome = self._machine.transition(
            original, AppointmentState.RESCHEDULED, self._engine.clock.now(), actor_id=actor_id
        )
        if not outcome.verdict.accepted:
            return BookingOutcome(verdict=outcome.verdict)

        earlier = self._store.find_replacement(appointment_id)
        if earlier is not None:
            return BookingOutcome(verdict=_already_rescheduled(appointment_id, earlier))

        booking = self.book(
            original.doctor_id,
            original.patient_id,
            date,
            window,
            emergency_override=emergency_override,
            actor_id=actor_id,
            notes=original.notes,
            rescheduled_from_id=appointment_id,
        )
        if not booking.verdict.accepted or booking.appointment is None:
            return booking

        replacement = booking.appointment
        audit = [e for e in outcome.effects if e.kind is EffectKind.RECORD_AUDIT]
        notify = Effect(
            kind=EffectKind.NOTIFY_RESCHEDULED,
            appointment_id=replacement.appointment_id,
            details={"rescheduled_from_id": appointment_id},
        )
        logger.info("Appointment {} rescheduled as {}", appointment_id, replacement.appointment_id)
        return booking.model_copy(
            update={"effects": (*audit, *booking.effects, notify)}
        )

    def move(
        self,
        appointment_id: str,
        date: dt.date,
        window: TimeWindow,
        *,
        emergency_override: bool = False,
        actor_id: str | None = None,
    ) -> BookingOutcome:
        """Change an active appointment's date or window, ignoring its own booking."""
        current = self._store.get_appointment(appointment_id)
        if current.state not in ACTIVE_STATES:
            return BookingOutcome(
                verdict=ValidationVerdict.reject(
                    FailureReason.INVALID_TRANSITION,
                    f"cannot move a {current.state.value} appointment",
                )
            )

        verdict = self._engine.validate_booking(
            current.doctor_id,
            date,
            window,
            exclude_appointment_id=appointment_id,
            emergency_override=emergency_override,
        )
        unchanged = date == current.date and window == current.window
        if verdict.accepted and not unchanged:
            verdict = self._engine.check_patient_limits(
                current.patient_id, date, exclude_appointment_id=appointment_id
            )
        if not verdict.accepted:
            return BookingOutcome(verdict=verdict)

        try:
            with self._store.transaction(current.doctor_id, date):
                recheck = self._engine.recheck_conflicts(
                    current.doctor_id, date, window, exclude_appointment_id=appointment_id
                )
                if not recheck.accepted:
                    return BookingOutcome(verdict=recheck)
                moved = self._store.update_appointment_window(appointment_id, date, window)
        except AgendaError:
            raise
        except Exception as exc:
            raise BookingError(reason=str(exc), appointment_id=appointment_id) from exc

        effects = self._machine.on_moved(current, moved, self._engine.clock.now(), actor_id)
        logger.info("Appointment {} moved to {} {}", appointment_id, date, window)
        return BookingOutcome(
            verdict=ValidationVerdict.ok(), appointment=moved, effects=tuple(effects)
        )
