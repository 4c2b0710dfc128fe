from collections.abc import Iterable

from agenda.domain.models import (
    ACTIVE_STATES,
    Appointment,
    FailureReason,
    TimeWindow,
    ValidationVerdict,
)
from agenda.scheduling.interval_math import gap_minutes, overlaps


class ConflictDetector:
    """Tests a candidate window against a doctor's bookings for one day.

    Per-appointment O(n) scan; a doctor's daily bookings number in the tens.
    """

    def __init__(self, min_gap_minutes: int = 5, daily_limit: int = 20) -> None:
        self.min_gap_minutes = min_gap_minutes
        self.daily_limit = daily_limit

    def blocking(
        self, existing: Iterable[Appointment], exclude_appointment_id: str | None = None
    ) -> list[Appointment]:
        """Appointments that occupy the doctor's time, minus the one being edited."""
        return [
            a
            for a in existing
            if a.state in ACTIVE_STATES
            and (exclude_appointment_id is None or a.appointment_id != exclude_appointment_id)
        ]

    def check_window(
        self, blocking: Iterable[Appointment], candidate: TimeWindow
    ) -> ValidationVerdict:
        """Overlap and minimum-gap checks; overlap wins when both apply."""
        blocking = list(blocking)

        for appointment in blocking:
            if overlaps(candidate, appointment.window):
                return ValidationVerdict.reject(
                    FailureReason.OVERLAP_CONFLICT,
                    f"overlaps appointment {appointment.appointment_id} at {appointment.window}",
                )

        for appointment in blocking:
            gap = gap_minutes(candidate, appointment.window)
            if 0 <= gap < self.min_gap_minutes:
                return ValidationVerdict.reject(
                    FailureReason.MINIMUM_GAP_VIOLATION,
                    f"only {gap} min from appointment {appointment.appointment_id}; "
                    f"{self.min_gap_minutes} min required",
                )

        return ValidationVerdict.ok()

    def check_daily_limit(self, blocking: Iterable[Appointment]) -> ValidationVerdict:
        count = len(list(blocking))
        if count >= self.daily_limit:
            return ValidationVerdict.reject(
                FailureReason.DAILY_LIMIT_EXCEEDED,
                f"{count} appointments already booked (limit {self.daily_limit})",
            )
        return ValidationVerdict.ok()

    def check(
        self,
        existing: Iterable[Appointment],
        candidate: TimeWindow,
        exclude_appointment_id: str | None = None,
    ) -> ValidationVerdict:
        blocking = self.blocking(existing, exclude_appointment_id)

        verdict = self.check_window(blocking, candidate)
        if not verdict.accepted:
            return verdict
        return self.check_daily_limit(blocking)
