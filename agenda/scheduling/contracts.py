import datetime as dt
from collections.abc import Iterable

from loguru import logger

from agenda.domain.models import Contract, FailureReason, ValidationVerdict


class ContractValidator:
    """Decides whether a doctor is under exactly one active contract on a date."""

    def matching(self, contracts: Iterable[Contract], date: dt.date) -> list[Contract]:
        return [c for c in contracts if c.active and c.covers(date)]

    def is_contracted(self, contracts: Iterable[Contract], date: dt.date) -> bool:
        return len(self.matching(contracts, date)) == 1

    def check(self, contracts: Iterable[Contract], date: dt.date) -> ValidationVerdict:
        """Accept iff exactly one active contract covers ``date``.

        More than one match is a data-integrity failure and is reported as
        ``CONFLICTING_CONTRACTS`` rather than silently picking one.
        """
        matches = self.matching(contracts, date)

        if not matches:
            return ValidationVerdict.reject(
                FailureReason.NOT_CONTRACTED, f"no active contract covers {date.isoformat()}"
            )

        if len(matches) > 1:
            ids = ", ".join(c.contract_id or "?" for c in matches)
            logger.error(
                "Data integrity: {} active contracts for doctor {} cover {} ({})",
                len(matches),
                matches[0].doctor_id,
                date,
                ids,
            )
            return ValidationVerdict.reject(
                FailureReason.CONFLICTING_CONTRACTS,
                f"{len(matches)} active contracts cover {date.isoformat()}",
            )

        return ValidationVerdict.ok()

    def check_new_contract(self, existing: Iterable[Contract], new: Contract) -> ValidationVerdict:
        """Creation-time precondition: an active contract may not intersect another."""
        if not new.active:
            return ValidationVerdict.ok()

        for contract in existing:
            if contract.doctor_id != new.doctor_id or not contract.active:
                continue
            if contract.contract_id is not None and contract.contract_id == new.contract_id:
                continue
            if contract.intersects(new):
                return ValidationVerdict.reject(
                    FailureReason.CONFLICTING_CONTRACTS,
                    f"overlaps contract {contract.contract_id or '?'} "
                    f"starting {contract.start_date}",
                )
        return ValidationVerdict.ok()
