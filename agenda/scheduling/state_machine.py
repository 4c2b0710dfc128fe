import datetime as dt

from loguru import logger

from agenda.domain.models import (
    Appointment,
    AppointmentState,
    Effect,
    EffectKind,
    FailureReason,
    TransitionOutcome,
    ValidationVerdict,
)

S = AppointmentState

LEGAL_TRANSITIONS: dict[AppointmentState, frozenset[AppointmentState]] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED, S.COMPLETED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.CANCELLED, S.COMPLETED, S.NO_SHOW}),
    # Rescheduling books a new appointment; the cancelled one stays as is.
    S.CANCELLED: frozenset({S.RESCHEDULED}),
}

TERMINAL_STATES: frozenset[AppointmentState] = frozenset({S.COMPLETED, S.NO_SHOW})

_NOTIFICATIONS: dict[AppointmentState, EffectKind] = {
    S.CONFIRMED: EffectKind.NOTIFY_CONFIRMED,
    S.CANCELLED: EffectKind.NOTIFY_CANCELLED,
    S.NO_SHOW: EffectKind.NOTIFY_NO_SHOW,
}


def audit_effect(
    appointment: Appointment,
    old_state: AppointmentState | None,
    new_state: AppointmentState,
    actor_id: str | None,
    **extra: str,
) -> Effect:
    return Effect(
        kind=EffectKind.RECORD_AUDIT,
        appointment_id=appointment.appointment_id,
        details={
            "old_state": old_state.value if old_state else "",
            "new_state": new_state.value,
            "actor_id": actor_id or "",
            **extra,
        },
    )


class AppointmentStateMachine:
    """Legal appointment state changes and the effects each one requires.

    Performs no I/O: callers persist the new state and then execute the
    returned effects (audit, notifications, reminders) in order.
    """

    def __init__(self, reminder_lead_hours: int = 24) -> None:
        self._reminder_lead = dt.timedelta(hours=reminder_lead_hours)

    def allowed_targets(self, state: AppointmentState) -> frozenset[AppointmentState]:
        return LEGAL_TRANSITIONS.get(state, frozenset())

    def check(
        self, appointment: Appointment, target: AppointmentState, now: dt.datetime
    ) -> ValidationVerdict:
        current = appointment.state
        if current in TERMINAL_STATES:
            return ValidationVerdict.reject(
                FailureReason.INVALID_TRANSITION, f"{current.value} is a terminal state"
            )
        if target not in self.allowed_targets(current):
            return ValidationVerdict.reject(
                FailureReason.INVALID_TRANSITION,
                f"{current.value} -> {target.value} is not allowed",
            )

        starts_at = appointment.starts_at
        if current is S.SCHEDULED and target is S.CANCELLED and starts_at < now:
            return ValidationVerdict.reject(
                FailureReason.INVALID_TRANSITION,
                "scheduled appointments in the past cannot be cancelled",
            )
        if target in (S.COMPLETED, S.NO_SHOW) and starts_at > now:
            return ValidationVerdict.reject(
                FailureReason.INVALID_TRANSITION,
                f"cannot mark as {target.value} before the appointment starts",
            )
        return ValidationVerdict.ok()

    def transition(
        self,
        appointment: Appointment,
        target: AppointmentState,
        now: dt.datetime,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> TransitionOutcome:
        """Decide whether ``appointment`` may move to ``target``.

        A rejected transition leaves the state unchanged and carries no
        effects. ``CANCELLED -> RESCHEDULED`` keeps the appointment
        ``CANCELLED`` and returns a ``BOOK_REPLACEMENT`` effect; the caller
        books the replacement as a new appointment.
        """
        current = appointment.state
        verdict = self.check(appointment, target, now)
        if not verdict.accepted:
            logger.debug(
                "Rejected transition for appointment {}: {}",
                appointment.appointment_id,
                verdict.detail,
            )
            return TransitionOutcome(verdict=verdict, previous_state=current, new_state=current)

        extra = {"reason": reason} if reason else {}

        if target is S.RESCHEDULED:
            effects = (
                audit_effect(appointment, current, target, actor_id, **extra),
                Effect(kind=EffectKind.BOOK_REPLACEMENT, appointment_id=appointment.appointment_id),
            )
            return TransitionOutcome(
                verdict=verdict, previous_state=current, new_state=current, effects=effects
            )

        effects_list = [audit_effect(appointment, current, target, actor_id, **extra)]
        if target in (S.CANCELLED, S.COMPLETED, S.NO_SHOW):
            effects_list.append(
                Effect(kind=EffectKind.CANCEL_REMINDER, appointment_id=appointment.appointment_id)
            )
        if target in _NOTIFICATIONS:
            effects_list.append(
                Effect(
                    kind=_NOTIFICATIONS[target],
                    appointment_id=appointment.appointment_id,
                    details=extra,
                )
            )
        return TransitionOutcome(
            verdict=verdict, previous_state=current, new_state=target, effects=tuple(effects_list)
        )

    def reminder_effect(self, appointment: Appointment, now: dt.datetime) -> Effect | None:
        due_at = appointment.starts_at - self._reminder_lead
        if due_at <= now:
            return None
        return Effect(
            kind=EffectKind.SCHEDULE_REMINDER,
            appointment_id=appointment.appointment_id,
            due_at=due_at,
        )

    def on_created(
        self, appointment: Appointment, now: dt.datetime, actor_id: str | None = None
    ) -> list[Effect]:
        """Effects owed when a new appointment is stored as ``SCHEDULED``."""
        effects = [
            audit_effect(appointment, None, appointment.state, actor_id),
            Effect(kind=EffectKind.NOTIFY_CREATED, appointment_id=appointment.appointment_id),
        ]
        reminder = self.reminder_effect(appointment, now)
        if reminder is not None:
            effects.append(reminder)
        return effects

    def on_moved(
        self,
        before: Appointment,
        after: Appointment,
        now: dt.datetime,
        actor_id: str | None = None,
    ) -> list[Effect]:
        """Effects owed when an active appointment's date or window changes."""
        effects = [
            audit_effect(
                after,
                before.state,
                after.state,
                actor_id,
                moved_from=f"{before.date.isoformat()} {before.window}",
                moved_to=f"{after.date.isoformat()} {after.window}",
            ),
            Effect(kind=EffectKind.CANCEL_REMINDER, appointment_id=after.appointment_id),
        ]
        reminder = self.reminder_effect(after, now)
        if reminder is not None:
            effects.append(reminder)
        return effects
