"""Sponsor guarantee ledger - collateral a GOLD sponsor locks against a sponsored credit"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from microcredit_engine.config import settings
from microcredit_engine.domain.exceptions import SponsorCapacityError
from microcredit_engine.domain.models import AccountType, Currency, EntryKind, Money
from microcredit_engine.infrastructure.database.models import CreditApplication, SponsorGuarantee
from microcredit_engine.infrastructure.database.repositories import GuaranteeRepository
from microcredit_engine.services.collaborators import AuditRecorder
from microcredit_engine.services.ledger import AccountLedger

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class GuaranteeLedger:
    """
    Guarantees are true balance holds on the sponsor's mandatory savings.

    The locked amount stays on the sponsor's account but is excluded from
    its available balance, so the sponsor can neither withdraw it nor pledge
    it twice, and the settlement cascade on the sponsor's own credits cannot
    reach it.
    """

    def __init__(self, db: Session, ledger: AccountLedger, audit: AuditRecorder, max_active: int | None = None):
        self.ledger = ledger
        self.audit = audit
        self.guarantees = GuaranteeRepository(db)
        self.max_active = max_active if max_active is not None else settings.max_active_sponsorships

    def lock_guarantee(
        self,
        sponsor_id: str,
        credit: CreditApplication,
        amount: Money,
        guarantee_bps: int,
        business_date: date,
    ) -> SponsorGuarantee:
        """Check the active-count ceiling, then hold the amount on the sponsor's mandatory savings"""
        active = self.guarantees.count_active(sponsor_id)
        if active >= self.max_active:
            raise SponsorCapacityError(
                f"Sponsor {sponsor_id} already guarantees {active} credits (maximum {self.max_active})"
            )

        account = self.ledger.get_account(sponsor_id, AccountType.MANDATORY_SAVINGS)
        self.ledger.hold(
            account.id,
            amount,
            business_date,
            credit_id=credit.id,
            description=f"Guarantee for credit {credit.id}",
        )
        guarantee = self.guarantees.create(
            sponsor_id=sponsor_id,
            beneficiary_id=credit.customer_id,
            credit_id=credit.id,
            currency=amount.currency.value,
            guarantee_bps=guarantee_bps,
            locked_cents=amount.amount_cents,
            is_active=True,
            liability_triggered=False,
            sponsor_paid_cents=0,
            locked_on=business_date,
        )

        self.audit.record(
            "guarantee.lock",
            SYSTEM_ACTOR,
            "sponsor_guarantee",
            guarantee.id,
            after={"sponsor_id": sponsor_id, "credit_id": str(credit.id), "locked_cents": amount.amount_cents},
        )
        logger.info(
            "Guarantee locked",
            extra={"sponsor_id": sponsor_id, "credit_id": str(credit.id), "locked_cents": amount.amount_cents},
        )
        return guarantee

    def release_guarantee(self, credit_id, business_date: date) -> Optional[SponsorGuarantee]:
        """Deactivate the guarantee and free the sponsor's locked capacity. No-op when already inactive."""
        guarantee = self.guarantees.get_by_credit(credit_id, for_update=True)
        if guarantee is None or not guarantee.is_active:
            return guarantee

        self._release_hold(guarantee, business_date)
        guarantee.is_active = False
        guarantee.released_on = business_date

        self.audit.record("guarantee.release", SYSTEM_ACTOR, "sponsor_guarantee", guarantee.id, after={"credit_id": str(credit_id)})
        logger.info("Guarantee released", extra={"sponsor_id": guarantee.sponsor_id, "credit_id": str(credit_id)})
        return guarantee

    def trigger_liability(self, credit: CreditApplication, shortfall: Money, business_date: date) -> Money:
        """
        Transfer a sponsored credit's shortfall to its guarantor.

        The whole hold is released first, then the guarantor's mandatory
        savings are debited up to the locked amount. Returns what the
        guarantor paid, zero when there is no active guarantee.
        """
        currency = Currency(credit.currency)
        guarantee = self.guarantees.get_by_credit(credit.id, for_update=True)
        if guarantee is None or not guarantee.is_active:
            return Money.zero(currency)

        self._release_hold(guarantee, business_date)

        account = self.ledger.get_account(guarantee.sponsor_id, AccountType.MANDATORY_SAVINGS)
        available = self.ledger.available(account.id, currency).amount_cents
        pay_cents = min(max(0, shortfall.amount_cents), guarantee.locked_cents, available)
        if pay_cents > 0:
            self.ledger.debit(
                account.id,
                Money(pay_cents, currency),
                EntryKind.SPONSOR_DEBIT,
                business_date,
                credit_id=credit.id,
                description=f"Sponsor liability for credit {credit.id}",
            )

        guarantee.liability_triggered = True
        guarantee.sponsor_paid_cents += pay_cents
        guarantee.is_active = False
        guarantee.released_on = business_date

        self.audit.record(
            "guarantee.liability_triggered",
            SYSTEM_ACTOR,
            "sponsor_guarantee",
            guarantee.id,
            after={"credit_id": str(credit.id), "sponsor_paid_cents": guarantee.sponsor_paid_cents},
        )
        logger.warning(
            "Sponsor liability triggered",
            extra={"sponsor_id": guarantee.sponsor_id, "credit_id": str(credit.id), "sponsor_paid_cents": pay_cents},
        )
        return Money(pay_cents, currency)

    def _release_hold(self, guarantee: SponsorGuarantee, business_date: date) -> None:
        account = self.ledger.get_account(guarantee.sponsor_id, AccountType.MANDATORY_SAVINGS)
        self.ledger.release(
            account.id,
            Money(guarantee.locked_cents, Currency(guarantee.currency)),
            business_date,
            credit_id=guarantee.credit_id,
            description=f"Guarantee release for credit {guarantee.credit_id}",
        )
