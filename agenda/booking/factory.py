from loguru import logger

from agenda.booking.service import BookingService
from agenda.config import AppConfig
from agenda.scheduling.engine import AvailabilityEngine
from agenda.scheduling.state_machine import AppointmentStateMachine
from agenda.store.factory import build_store
from agenda.store.ports import AbstractAppointmentStore, Clock, SystemClock


def build_booking_service(
    config: AppConfig,
    *,
    store: AbstractAppointmentStore | None = None,
    clock: Clock | None = None,
) -> BookingService:
    """Wire store, clock, engine and state machine from config."""
    store = store or build_store(config)
    clock = clock or SystemClock(config.clinic_timezone)
    engine = AvailabilityEngine(store, config.scheduling, clock)
    machine = AppointmentStateMachine(reminder_lead_hours=config.scheduling.reminder_lead_hours)
    logger.info("Booking service ready (timezone {})", config.clinic_timezone)
    return BookingService(store, engine, machine)
