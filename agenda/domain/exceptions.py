class AgendaError(Exception):
    """Base exception for all scheduling hard failures."""


class MalformedTimeError(AgendaError):
    """Raised when a date, time or window cannot be interpreted."""


class DoctorNotFoundError(AgendaError):
    """Raised when a booking references a doctor the store does not know."""

    def __init__(self, doctor_id: str) -> None:
        self.doctor_id = doctor_id
        super().__init__(f"Doctor not found: {doctor_id}")


class AppointmentNotFoundError(AgendaError):
    """Raised when an appointment id does not resolve to a stored appointment."""

    def __init__(self, appointment_id: str) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment not found: {appointment_id}")


class StorageUnavailableError(AgendaError):
    """Raised when the persistence layer fails or cannot be reached."""


class BookingError(AgendaError):
    """Raised when a booking write fails for a reason other than a rule rejection."""

    def __init__(self, reason: str, appointment_id: str | None = None) -> None:
        self.reason = reason
        self.appointment_id = appointment_id
        super().__init__(f"Failed to book appointment: {reason}")


class TemplateEntryNotFoundError(AgendaError):
    """Raised when a template entry id does not resolve to a stored entry."""

    def __init__(self, entry_id: str) -> None:
        self.entry_id = entry_id
        super().__init__(f"Template entry not found: {entry_id}")


class InvalidArgumentError(AgendaError):
    """Raised when a request argument has the wrong type or an unknown value."""
