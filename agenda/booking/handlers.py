from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from agenda.booking.messages import describe
from agenda.booking.service import BookingService
from agenda.domain.exceptions import AgendaError, InvalidArgumentError, MalformedTimeError
from agenda.domain.models import (
    AppointmentState,
    BookingOutcome,
    Effect,
    FailureReason,
    TimeWindow,
    TransitionOutcome,
    ValidationVerdict,
)
from agenda.scheduling.datetime_helpers import parse_clock, parse_date
from agenda.scheduling.interval_math import parse_window, window_from_duration

# Rejections for which nearby free slots are worth offering.
_SUGGEST_ON: frozenset[FailureReason] = frozenset(
    {
        FailureReason.OVERLAP_CONFLICT,
        FailureReason.MINIMUM_GAP_VIOLATION,
        FailureReason.TOO_SOON,
        FailureReason.OUTSIDE_AVAILABILITY,
        FailureReason.INVALID_INTERVAL,
    }
)


def _window_payload(window: TimeWindow) -> dict[str, str]:
    return {"start": window.start.strftime("%H:%M"), "end": window.end.strftime("%H:%M")}


def _effects_payload(effects: tuple[Effect, ...]) -> list[dict[str, Any]]:
    return [effect.model_dump(mode="json") for effect in effects]


def _rejection(verdict: ValidationVerdict) -> dict[str, Any]:
    return {
        "success": False,
        "reason": verdict.failure_reason.value if verdict.failure_reason else "",
        "message": describe(verdict),
        "detail": verdict.detail,
    }


def _require(arguments: Mapping[str, Any], *names: str) -> str | None:
    missing = [n for n in names if not arguments.get(n)]
    if not missing:
        return None
    quoted = ", ".join(f"'{n}'" for n in missing)
    return f"{quoted} {'is' if len(missing) == 1 else 'are'} required."


def _error(message: str) -> dict[str, Any]:
    return {"success": False, "error": True, "message": message}


def _parse_flag(arguments: Mapping[str, Any], name: str) -> bool:
    value = arguments.get(name)
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise InvalidArgumentError(f"'{name}' must be true or false, got {value!r}.")


def _parse_window(arguments: Mapping[str, Any]) -> TimeWindow:
    if arguments.get("end"):
        return parse_window(arguments["start"], arguments["end"])
    try:
        minutes = int(arguments.get("duration_minutes", 0))
    except (TypeError, ValueError) as exc:
        raise MalformedTimeError("'duration_minutes' must be a whole number of minutes.") from exc
    if minutes <= 0:
        raise MalformedTimeError("Either 'end' or a positive 'duration_minutes' is required.")
    return window_from_duration(arguments["start"], minutes)


class BookingHandlers:
    """Request handlers for the API layer: string arguments in, JSON-ready dicts out."""

    def __init__(self, service: BookingService) -> None:
        self._service = service

    def _guard(self, name: str, action: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        logger.debug("Handler call: {}", name)
        try:
            return action()
        except AgendaError as exc:
            return _error(str(exc))
        except Exception:
            logger.exception("Unexpected error in {}", name)
            return _error(f"An unexpected error occurred while handling {name}.")

    def handle_list_slots(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        missing = _require(arguments, "doctor_id", "date")
        if missing:
            return _error(missing)

        def action() -> dict[str, Any]:
            date = parse_date(arguments["date"])
            slots = self._service.list_available_slots(arguments["doctor_id"], date)
            return {
                "success": True,
                "date": date.isoformat(),
                "slots": [_window_payload(s) for s in slots],
            }

        return self._guard("list_slots", action)

    def _booking_result(
        self, outcome: BookingOutcome, doctor_id: str, arguments: Mapping[str, Any]
    ) -> dict[str, Any]:
        if not outcome.verdict.accepted or outcome.appointment is None:
            result = _rejection(outcome.verdict)
            if outcome.verdict.failure_reason in _SUGGEST_ON:
                date = parse_date(arguments["date"])
                start = parse_clock(arguments["start"], "start")
                result["alternatives"] = [
                    _window_payload(s)
                    for s in self._service.suggest_alternatives(doctor_id, date, start)
                ]
            return result

        appointment = outcome.appointment
        return {
            "success": True,
            "appointment_id": appointment.appointment_id,
            "doctor_id": appointment.doctor_id,
            "patient_id": appointment.patient_id,
            "date": appointment.date.isoformat(),
            **_window_payload(appointment.window),
            "state": appointment.state.value,
            "rescheduled_from_id": appointment.rescheduled_from_id,
            "effects": _effects_payload(outcome.effects),
        }

    def handle_book(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        missing = _require(arguments, "doctor_id", "patient_id", "date", "start")
        if missing:
            return _error(missing)

        def action() -> dict[str, Any]:
            outcome = self._service.book(
                arguments["doctor_id"],
                arguments["patient_id"],
                parse_date(arguments["date"]),
                _parse_window(arguments),
                emergency_override=_parse_flag(arguments, "emergency_override"),
                actor_id=arguments.get("actor_id"),
                notes=arguments.get("notes", ""),
            )
            return self._booking_result(outcome, arguments["doctor_id"], arguments)

        return self._guard("book", action)

    def handle_change_state(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        missing = _require(arguments, "appointment_id", "state")
        if missing:
            return _error(missing)

        try:
            target = AppointmentState(arguments["state"])
        except ValueError:
            allowed = ", ".join(s.value for s in AppointmentState)
            return _error(f"Unknown state '{arguments['state']}'. Expected one of: {allowed}.")

        if target is AppointmentState.RESCHEDULED:
            return _error("Use reschedule with a new date and time to reschedule.")

        def action() -> dict[str, Any]:
            outcome: TransitionOutcome = self._service.change_state(
                arguments["appointment_id"],
                target,
                actor_id=arguments.get("actor_id"),
                reason=arguments.get("reason"),
            )
            if not outcome.verdict.accepted:
                return _rejection(outcome.verdict)
            return {
                "success": True,
                "appointment_id": arguments["appointment_id"],
                "previous_state": outcome.previous_state.value,
                "state": outcome.new_state.value,
                "effects": _effects_payload(outcome.effects),
            }

        return self._guard("change_state", action)

    def handle_reschedule(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        missing = _require(arguments, "appointment_id", "date", "start")
        if missing:
            return _error(missing)

        def action() -> dict[str, Any]:
            outcome = self._service.reschedule(
                arguments["appointment_id"],
                parse_date(arguments["date"]),
                _parse_window(arguments),
                emergency_override=_parse_flag(arguments, "emergency_override"),
                actor_id=arguments.get("actor_id"),
            )
            if not outcome.verdict.accepted or outcome.appointment is None:
                return _rejection(outcome.verdict)
            return self._booking_result(outcome, outcome.appointment.doctor_id, arguments)

        return self._guard("reschedule", action)

    def handle_move(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        missing = _require(arguments, "appointment_id", "date", "start")
        if missing:
            return _error(missing)

        def action() -> dict[str, Any]:
            outcome = self._service.move(
                arguments["appointment_id"],
                parse_date(arguments["date"]),
                _parse_window(arguments),
                emergency_override=_parse_flag(arguments, "emergency_override"),
                actor_id=arguments.get("actor_id"),
            )
            if not outcome.verdict.accepted or outcome.appointment is None:
                return _rejection(outcome.verdict)
            return self._booking_result(outcome, outcome.appointment.doctor_id, arguments)

        return self._guard("move", action)
