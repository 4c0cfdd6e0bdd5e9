"""Auto-renewal of fully repaid short overdrafts"""

import logging
import uuid
from datetime import date

from sqlalchemy.orm import Session

from microcredit_engine.domain.lifecycle import OUTSTANDING_STATUSES, assert_transition
from microcredit_engine.domain.models import CreditStatus, Currency, Money, ProductArgs
from microcredit_engine.domain.products.registry import get_rules
from microcredit_engine.infrastructure.database.models import CreditApplication, RenewalRecord
from microcredit_engine.infrastructure.database.repositories import CreditRepository, RenewalRepository
from microcredit_engine.infrastructure.observability.logging import log_credit_event
from microcredit_engine.infrastructure.observability.metrics import record_renewal
from microcredit_engine.services.collaborators import OutboxNotifier
from microcredit_engine.services.credits import CreditService, fmt_money

logger = logging.getLogger(__name__)


class RenewalService:
    """Renews a repaid renewable credit into an identical one, or records why it cannot"""

    def __init__(self, db: Session, credits: CreditService, notifier: OutboxNotifier):
        self.db = db
        self.credits = credits
        self.notifier = notifier
        self.credit_repo = CreditRepository(db)
        self.renewals = RenewalRepository(db)

    def renew_credit(self, credit_id: uuid.UUID, business_date: date) -> RenewalRecord | None:
        """
        Re-run eligibility for a repaid renewable credit.

        Eligible: the old credit completes and an APPROVED copy (same amount,
        fresh quote) is created and disbursed right away. Ineligible: the
        failing reasons are recorded and the old credit completes without
        renewal. Returns None when the credit is not a renewal candidate.
        """
        old = self.credits.get_credit(credit_id, for_update=True)
        if (
            not old.is_renewable
            or CreditStatus(old.status) not in OUTSTANDING_STATUSES
            or old.remaining_cents != 0
            or self.renewals.get_by_credit(old.id) is not None
        ):
            return None

        rules = get_rules(old.product_type)
        amount = Money(old.approved_cents, Currency(old.currency))
        args = ProductArgs(purpose=old.purpose)
        reasons = rules.check_eligibility(self.credits.facts(old.customer_id), amount, args)

        self.credits.complete(old)

        if reasons:
            record = self.renewals.create(
                credit_id=old.id,
                customer_id=old.customer_id,
                renewed=False,
                reasons=reasons,
                business_date=business_date,
            )
            record_renewal(renewed=False)
            log_credit_event("renewal_blocked", old.id, old.customer_id, reasons=reasons)
            self.notifier.notify(
                old.customer_id,
                "RENEWAL_BLOCKED",
                "Overdraft not renewed",
                f"Your overdraft was not renewed: {'; '.join(reasons)}",
                credit_id=old.id,
            )
            return record

        new = self._create_copy(old, amount, args, business_date)
        self.credits.disburse_credit(new.id)

        record = self.renewals.create(
            credit_id=old.id,
            new_credit_id=new.id,
            customer_id=old.customer_id,
            renewed=True,
            reasons=[],
            business_date=business_date,
        )
        record_renewal(renewed=True)
        log_credit_event("renewed", old.id, old.customer_id, new_credit_id=str(new.id))
        self.notifier.notify(
            old.customer_id,
            "CREDIT_RENEWED",
            "Overdraft renewed",
            f"Your overdraft of {fmt_money(amount.amount_cents, amount.currency.value)} was renewed.",
            credit_id=new.id,
        )
        return record

    def _create_copy(self, old: CreditApplication, amount: Money, args: ProductArgs, business_date: date) -> CreditApplication:
        rules = get_rules(old.product_type)
        terms = rules.quote(amount, args)
        assert_transition(CreditStatus.CAUTION_PENDING, CreditStatus.APPROVED)
        return self.credit_repo.create(
            customer_id=old.customer_id,
            product_type=old.product_type,
            currency=old.currency,
            status=CreditStatus.APPROVED.value,
            requested_cents=amount.amount_cents,
            approved_cents=amount.amount_cents,
            disbursed_cents=0,
            processing_fee_cents=terms.processing_fee.amount_cents,
            interest_rate_bps=terms.interest_rate_bps,
            total_interest_cents=terms.total_interest.amount_cents,
            caution_bps=terms.caution_bps,
            caution_cents=terms.caution_amount.amount_cents,
            duration_months=terms.duration_months,
            duration_days=terms.duration_days,
            installment_cents=terms.installment.amount_cents if terms.installment else None,
            total_paid_cents=0,
            late_interest_cents=0,
            remaining_cents=0,
            mandatory_savings_account_id=old.mandatory_savings_account_id,
            caution_account_id=old.caution_account_id,
            credit_account_id=old.credit_account_id,
            renewed_from_id=old.id,
            is_renewable=rules.renewable,
            purpose=old.purpose,
            documents=old.documents,
            requested_on=business_date,
            approved_on=business_date,
        )
