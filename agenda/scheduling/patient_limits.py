import datetime as dt
from collections.abc import Iterable

from agenda.domain.models import ACTIVE_STATES, Appointment, FailureReason, ValidationVerdict


class PatientLimitValidator:
    """Caps how many active appointments one patient holds per day and per calendar month.

    Counts span every doctor. The daily cap is checked first.
    """

    def __init__(self, daily_limit: int = 3, monthly_limit: int = 10) -> None:
        self.daily_limit = daily_limit
        self.monthly_limit = monthly_limit

    def check(
        self,
        bookings: Iterable[Appointment],
        date: dt.date,
        exclude_appointment_id: str | None = None,
    ) -> ValidationVerdict:
        """Decide whether the patient may hold one more appointment on ``date``.

        ``bookings`` may hold appointments outside ``date``'s month; they are ignored.
        """
        held = [
            a
            for a in bookings
            if a.state in ACTIVE_STATES
            and (a.date.year, a.date.month) == (date.year, date.month)
            and (exclude_appointment_id is None or a.appointment_id != exclude_appointment_id)
        ]

        on_day = sum(1 for a in held if a.date == date)
        if on_day >= self.daily_limit:
            return ValidationVerdict.reject(
                FailureReason.PATIENT_DAILY_LIMIT_EXCEEDED,
                f"patient already holds {on_day} appointments on {date.isoformat()} "
                f"(limit {self.daily_limit})",
            )

        if len(held) >= self.monthly_limit:
            return ValidationVerdict.reject(
                FailureReason.PATIENT_MONTHLY_LIMIT_EXCEEDED,
                f"patient already holds {len(held)} appointments in {date:%Y-%m} "
                f"(limit {self.monthly_limit})",
            )

        return ValidationVerdict.ok()
