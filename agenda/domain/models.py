import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

MINUTES_PER_DAY = 24 * 60


class AppointmentState(str, Enum):
    """Lifecycle states of an appointment."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


# States that occupy the doctor's time.
ACTIVE_STATES: frozenset[AppointmentState] = frozenset(
    {AppointmentState.SCHEDULED, AppointmentState.CONFIRMED}
)


class FailureReason(str, Enum):
    """Closed set of reasons a booking or transition is rejected."""

    NOT_CONTRACTED = "not_contracted"
    CONFLICTING_CONTRACTS = "conflicting_contracts"
    OUTSIDE_AVAILABILITY = "outside_availability"
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
    INVALID_INTERVAL = "invalid_interval"
    INVALID_DURATION = "invalid_duration"
    TOO_SOON = "too_soon"
    TOO_FAR_AHEAD = "too_far_ahead"
    BLACKOUT_DATE = "blackout_date"
    WEEKEND_NOT_ALLOWED = "weekend_not_allowed"
    OVERLAP_CONFLICT = "overlap_conflict"
    MINIMUM_GAP_VIOLATION = "minimum_gap_violation"
    DAILY_LIMIT_EXCEEDED = "daily_limit_exceeded"
    PATIENT_DAILY_LIMIT_EXCEEDED = "patient_daily_limit_exceeded"
    PATIENT_MONTHLY_LIMIT_EXCEEDED = "patient_monthly_limit_exceeded"
    INVALID_TRANSITION = "invalid_transition"


class ValidationVerdict(BaseModel):
    """Outcome of a validator. Business rejections are data, never exceptions."""

    model_config = ConfigDict(frozen=True)

    accepted: bool
    failure_reason: FailureReason | None = None
    detail: str = ""

    @classmethod
    def ok(cls) -> "ValidationVerdict":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: FailureReason, detail: str = "") -> "ValidationVerdict":
        return cls(accepted=False, failure_reason=reason, detail=detail)


class TimeWindow(BaseModel):
    """Half-open ``[start, end)`` interval on a single calendar date, minute resolution."""

    model_config = ConfigDict(frozen=True)

    start: dt.time
    end: dt.time

    @model_validator(mode="after")
    def _check_bounds(self) -> "TimeWindow":
        for value in (self.start, self.end):
            if value.second or value.microsecond:
                raise ValueError(f"time {value} is not on a whole minute")
            if value.tzinfo is not None:
                raise ValueError("window times must be naive clinic-local times")
        if self.end < self.start:
            raise ValueError(f"window end {self.end} is before start {self.start}")
        return self

    @classmethod
    def from_start(cls, start: dt.time, minutes: int) -> "TimeWindow":
        """Build ``[start, start + minutes)``; the window may not cross midnight."""
        end_minute = start.hour * 60 + start.minute + minutes
        if minutes < 0 or end_minute >= MINUTES_PER_DAY:
            raise ValueError(f"window of {minutes} min from {start} does not fit in one day")
        return cls(start=start, end=dt.time(end_minute // 60, end_minute % 60))

    @property
    def start_minute(self) -> int:
        return self.start.hour * 60 + self.start.minute

    @property
    def end_minute(self) -> int:
        return self.end.hour * 60 + self.end.minute

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute

    def __str__(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


class AvailabilityTemplateEntry(BaseModel):
    """A recurring weekly availability block, e.g. Mondays 09:00-12:00 in 30 min slots."""

    model_config = ConfigDict(frozen=True)

    entry_id: str | None = None
    doctor_id: str
    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday ... 6=Saturday
    start_time: dt.time
    end_time: dt.time
    slot_duration_minutes: int = Field(gt=0)
    active: bool = True

    @model_validator(mode="after")
    def _check_order(self) -> "AvailabilityTemplateEntry":
        if self.end_time <= self.start_time:
            raise ValueError("template entry end_time must be after start_time")
        return self

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start_time, end=self.end_time)


class Contract(BaseModel):
    """A doctor's employment period. ``end_date=None`` means open-ended."""

    model_config = ConfigDict(frozen=True)

    contract_id: str | None = None
    doctor_id: str
    start_date: dt.date
    end_date: dt.date | None = None
    active: bool = True
    contract_type: str = ""

    @model_validator(mode="after")
    def _check_order(self) -> "Contract":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("contract end_date must not precede start_date")
        return self

    def covers(self, date: dt.date) -> bool:
        if date < self.start_date:
            return False
        return self.end_date is None or date <= self.end_date

    def intersects(self, other: "Contract") -> bool:
        starts_before_other_ends = other.end_date is None or self.start_date <= other.end_date
        other_starts_before_end = self.end_date is None or other.start_date <= self.end_date
        return starts_before_other_ends and other_starts_before_end


class Appointment(BaseModel):
    """A booked appointment. Cancellation is a state, never a deletion."""

    model_config = ConfigDict(frozen=True)

    appointment_id: str | None = None
    doctor_id: str
    patient_id: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    duration_minutes: int = Field(gt=0)
    state: AppointmentState = AppointmentState.SCHEDULED
    notes: str = ""
    rescheduled_from_id: str | None = None

    @model_validator(mode="after")
    def _check_duration(self) -> "Appointment":
        if TimeWindow.from_start(self.start_time, self.duration_minutes).end != self.end_time:
            raise ValueError("end_time must equal start_time + duration_minutes")
        return self

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start_time, end=self.end_time)

    @property
    def starts_at(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.start_time)


class EffectKind(str, Enum):
    """Side effects the caller must perform after a lifecycle change."""

    RECORD_AUDIT = "record_audit"
    NOTIFY_CREATED = "notify_created"
    SCHEDULE_REMINDER = "schedule_reminder"
    CANCEL_REMINDER = "cancel_reminder"
    NOTIFY_CONFIRMED = "notify_confirmed"
    NOTIFY_CANCELLED = "notify_cancelled"
    NOTIFY_NO_SHOW = "notify_no_show"
    BOOK_REPLACEMENT = "book_replacement"
    NOTIFY_RESCHEDULED = "notify_rescheduled"


class Effect(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EffectKind
    appointment_id: str | None = None
    due_at: dt.datetime | None = None
    details: dict[str, str] = Field(default_factory=dict)


class TransitionOutcome(BaseModel):
    """Result of asking the state machine to move an appointment."""

    model_config = ConfigDict(frozen=True)

    verdict: ValidationVerdict
    previous_state: AppointmentState
    new_state: AppointmentState
    effects: tuple[Effect, ...] = ()


class BookingOutcome(BaseModel):
    """Result of a booking write: the verdict, and on success the stored appointment."""

    model_config = ConfigDict(frozen=True)

    verdict: ValidationVerdict
    appointment: Appointment | None = None
    effects: tuple[Effect, ...] = ()
