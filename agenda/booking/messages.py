from agenda.domain.models import FailureReason, ValidationVerdict

FAILURE_MESSAGES: dict[FailureReason, str] = {
    FailureReason.NOT_CONTRACTED: "The doctor has no active contract on that date.",
    FailureReason.CONFLICTING_CONTRACTS: (
        "The doctor's contracts overlap on that date. Please contact an administrator."
    ),
    FailureReason.OUTSIDE_AVAILABILITY: "The doctor does not see patients at that time.",
    FailureReason.OUTSIDE_BUSINESS_HOURS: "Appointments must fall within clinic business hours.",
    FailureReason.INVALID_INTERVAL: (
        "Appointments must start on an allowed interval (e.g. :00, :15, :30)."
    ),
    FailureReason.INVALID_DURATION: "The requested appointment length is not allowed.",
    FailureReason.TOO_SOON: "That time is too soon to book. Please choose a later time.",
    FailureReason.TOO_FAR_AHEAD: "That date is too far ahead to book.",
    FailureReason.BLACKOUT_DATE: "The clinic is closed on that date.",
    FailureReason.WEEKEND_NOT_ALLOWED: "Appointments cannot be booked on weekends.",
    FailureReason.OVERLAP_CONFLICT: "That time is already taken. Please choose another slot.",
    FailureReason.MINIMUM_GAP_VIOLATION: (
        "That time is too close to another appointment. Please choose another slot."
    ),
    FailureReason.DAILY_LIMIT_EXCEEDED: "The doctor is fully booked on that date.",
    FailureReason.PATIENT_DAILY_LIMIT_EXCEEDED: (
        "The patient already has the maximum number of appointments for that day."
    ),
    FailureReason.PATIENT_MONTHLY_LIMIT_EXCEEDED: (
        "The patient already has the maximum number of appointments for that month."
    ),
    FailureReason.INVALID_TRANSITION: "The appointment cannot be changed that way.",
}

DEFAULT_MESSAGE: str = "The request could not be completed."


def describe(verdict: ValidationVerdict) -> str:
    """User-facing message for a verdict; empty for accepted verdicts."""
    if verdict.accepted:
        return ""
    if verdict.failure_reason is None:
        return DEFAULT_MESSAGE
    return FAILURE_MESSAGES.get(verdict.failure_reason, DEFAULT_MESSAGE)
