from loguru import logger

from agenda.domain.exceptions import DoctorNotFoundError
from agenda.domain.models import AvailabilityTemplateEntry, Contract, ValidationVerdict
from agenda.scheduling.contracts import ContractValidator
from agenda.store.ports import AbstractAppointmentStore


class RosterService:
    """Administrative writes for the data the availability engine reads."""

    def __init__(self, store: AbstractAppointmentStore) -> None:
        self._store = store
        self._contracts = ContractValidator()

    def _require_doctor(self, doctor_id: str) -> None:
        if not self._store.has_doctor(doctor_id):
            raise DoctorNotFoundError(doctor_id)

    def register_doctor(self, doctor_id: str) -> None:
        self._store.add_doctor(doctor_id)
        logger.info("Registered doctor {}", doctor_id)

    def add_contract(self, contract: Contract) -> tuple[ValidationVerdict, str | None]:
        """Store a contract unless it overlaps another active one for the doctor.

        Returns ``(verdict, contract_id)``; ``contract_id`` is None when rejected.
        """
        self._require_doctor(contract.doctor_id)

        verdict = self._contracts.check_new_contract(
            self._store.list_contracts(contract.doctor_id), contract
        )
        if not verdict.accepted:
            logger.warning(
                "Contract rejected for doctor {}: {}", contract.doctor_id, verdict.detail
            )
            return verdict, None

        contract_id = self._store.add_contract(contract)
        logger.info("Contract {} added for doctor {}", contract_id, contract.doctor_id)
        return verdict, contract_id

    def add_template_entry(self, entry: AvailabilityTemplateEntry) -> str:
        self._require_doctor(entry.doctor_id)
        entry_id = self._store.add_template_entry(entry)
        logger.info(
            "Template entry {} added for doctor {}: day {} {:%H:%M}-{:%H:%M}",
            entry_id,
            entry.doctor_id,
            entry.day_of_week,
            entry.start_time,
            entry.end_time,
        )
        return entry_id

    def deactivate_template_entry(self, entry_id: str) -> None:
        self._store.deactivate_template_entry(entry_id)
        logger.info("Template entry {} deactivated", entry_id)
