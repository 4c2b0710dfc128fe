import datetime as dt

from agenda.config import SchedulingConfig
from agenda.domain.models import FailureReason, TimeWindow, ValidationVerdict
from agenda.scheduling.datetime_helpers import add_months, is_weekend


class BusinessRuleValidator:
    """Clinic-wide booking policy over a single candidate window.

    Checks short-circuit in a fixed order so the reported reason is
    deterministic: blackout, weekend, business hours, interval grid, advance
    notice, booking horizon, duration bounds.
    """

    def __init__(self, config: SchedulingConfig) -> None:
        self._config = config

    def validate_date(self, date: dt.date) -> ValidationVerdict:
        """Date-level checks that reject every window on ``date`` alike."""
        if date in self._config.blackout_dates:
            return ValidationVerdict.reject(
                FailureReason.BLACKOUT_DATE, f"{date.isoformat()} is a blackout date"
            )
        if not self._config.allow_weekends and is_weekend(date):
            return ValidationVerdict.reject(
                FailureReason.WEEKEND_NOT_ALLOWED, f"{date.isoformat()} falls on a weekend"
            )
        return ValidationVerdict.ok()

    def validate(
        self,
        candidate: TimeWindow,
        date: dt.date,
        now: dt.datetime,
        *,
        emergency_override: bool = False,
    ) -> ValidationVerdict:
        """Return the first failing rule for ``candidate`` on ``date``.

        ``emergency_override`` waives the minimum-notice window only; a start
        that is already in the past is rejected regardless.
        """
        verdict = self.validate_date(date)
        if not verdict.accepted:
            return verdict

        cfg = self._config
        if candidate.start < cfg.business_start or candidate.end > cfg.business_end:
            return ValidationVerdict.reject(
                FailureReason.OUTSIDE_BUSINESS_HOURS,
                f"{candidate} is outside {cfg.business_start:%H:%M}-{cfg.business_end:%H:%M}",
            )

        if not any(candidate.start.minute % m == 0 for m in cfg.allowed_intervals_minutes):
            allowed = ", ".join(str(m) for m in sorted(cfg.allowed_intervals_minutes))
            return ValidationVerdict.reject(
                FailureReason.INVALID_INTERVAL,
                f"start minute {candidate.start.minute} is not a multiple of any of {allowed}",
            )

        starts_at = dt.datetime.combine(date, candidate.start)
        if starts_at < now:
            return ValidationVerdict.reject(FailureReason.TOO_SOON, "start is in the past")
        if not emergency_override and starts_at < now + dt.timedelta(hours=cfg.min_advance_hours):
            return ValidationVerdict.reject(
                FailureReason.TOO_SOON,
                f"bookings need at least {cfg.min_advance_hours}h notice",
            )

        if starts_at > add_months(now, cfg.max_advance_months):
            return ValidationVerdict.reject(
                FailureReason.TOO_FAR_AHEAD,
                f"bookings open at most {cfg.max_advance_months} months ahead",
            )

        duration = candidate.duration_minutes
        if not cfg.min_duration_minutes <= duration <= cfg.max_duration_minutes:
            return ValidationVerdict.reject(
                FailureReason.INVALID_DURATION,
                f"duration {duration} min is outside "
                f"{cfg.min_duration_minutes}-{cfg.max_duration_minutes} min",
            )

        return ValidationVerdict.ok()
