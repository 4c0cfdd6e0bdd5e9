"""Settlement & penalty engine - forced collection of overdue credits"""

import logging
import uuid
from datetime import date

from sqlalchemy.orm import Session

from microcredit_engine.domain.lifecycle import OUTSTANDING_STATUSES
from microcredit_engine.domain.models import (
    AccountType,
    CreditStatus,
    Currency,
    EntryKind,
    Money,
    SettlementOutcome,
)
from microcredit_engine.domain.products.registry import get_rules
from microcredit_engine.domain.settlement import CASCADE_ORDER, is_settlement_due, late_interest, plan_cascade
from microcredit_engine.infrastructure.database.models import CreditApplication
from microcredit_engine.infrastructure.database.repositories import DetentionRepository
from microcredit_engine.infrastructure.observability.logging import log_credit_event
from microcredit_engine.infrastructure.observability.metrics import record_settlement
from microcredit_engine.services.collaborators import AuditRecorder, OutboxNotifier, credit_snapshot
from microcredit_engine.services.credits import CreditService, fmt_money
from microcredit_engine.services.guarantees import GuaranteeLedger
from microcredit_engine.services.ledger import AccountLedger

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class SettlementEngine:
    """
    Settles one overdue credit at a time.

    Steps, all inside the caller's transaction:
    1. Cascade: debit mandatory savings (available balance only) then
       caution, never more than outstanding; credit the sum collected to the
       credit account and record one auto-debited repayment.
    2. Fully covered: complete the credit (renewable ones stay open at zero).
    3. Sponsored shortfall: the guarantor pays up to the locked amount; the
       sponsored customer is not pursued further.
    4. Other shortfall: late interest on the remainder, processing fee
       moved to the fines account, virtual detention opened.
    """

    def __init__(
        self,
        db: Session,
        ledger: AccountLedger,
        credits: CreditService,
        guarantees: GuaranteeLedger,
        notifier: OutboxNotifier,
        audit: AuditRecorder,
    ):
        self.db = db
        self.ledger = ledger
        self.credits = credits
        self.guarantees = guarantees
        self.notifier = notifier
        self.audit = audit
        self.detentions = DetentionRepository(db)

    def settle_credit(self, credit_id: uuid.UUID, business_date: date) -> SettlementOutcome:
        # Lock the credit row and repeat the checks under the lock
        credit = self.credits.get_credit(credit_id, for_update=True)
        rules = get_rules(credit.product_type)
        if (
            CreditStatus(credit.status) not in OUTSTANDING_STATUSES
            or credit.remaining_cents <= 0
            or not is_settlement_due(credit.maturity_date, rules.settlement_grace_days, business_date)
        ):
            record_settlement("skipped")
            return SettlementOutcome(credit_id=credit.id, outcome="skipped", remaining_cents=credit.remaining_cents)

        before = credit_snapshot(credit)
        collected = self._cascade(credit, business_date)
        credit.settled_on = business_date

        if credit.remaining_cents == 0:
            self.credits.settle_in_full(credit)
            outcome = SettlementOutcome(credit_id=credit.id, outcome="covered", collected_cents=collected)
        elif credit.sponsor_id:
            outcome = self._sponsor_fallback(credit, collected, business_date)
        else:
            outcome = self._penalize(credit, collected, rules.late_interest_bps, business_date)
        self.db.flush()

        record_settlement(outcome.outcome)
        self.audit.record("credit.settlement", SYSTEM_ACTOR, "credit_application", credit.id, before, credit_snapshot(credit))
        log_credit_event(
            "settled",
            credit.id,
            credit.customer_id,
            outcome=outcome.outcome,
            collected_cents=outcome.collected_cents,
            sponsor_paid_cents=outcome.sponsor_paid_cents,
            late_interest_cents=outcome.late_interest_cents,
            remaining_cents=credit.remaining_cents,
        )
        return outcome

    def _cascade(self, credit: CreditApplication, business_date: date) -> int:
        currency = Currency(credit.currency)
        account_ids = {
            AccountType.MANDATORY_SAVINGS: credit.mandatory_savings_account_id,
            AccountType.CAUTION: credit.caution_account_id,
        }

        sources = []
        for account_type in CASCADE_ORDER:
            account_id = account_ids[account_type]
            if account_id is None:
                account = self.ledger.find_account(credit.customer_id, account_type)
                if account is None:
                    continue
                account_id = account_ids[account_type] = account.id
            sources.append((account_type, self.ledger.available(account_id, currency).amount_cents))

        plan = plan_cascade(credit.remaining_cents, sources)
        collected = 0
        for debit in plan:
            self.ledger.debit(
                account_ids[debit.account_type],
                Money(debit.amount_cents, currency),
                EntryKind.AUTO_DEBIT,
                business_date,
                credit_id=credit.id,
                description="Settlement cascade",
            )
            collected += debit.amount_cents

        if collected > 0:
            self.ledger.credit(
                credit.credit_account_id,
                Money(collected, currency),
                EntryKind.COLLECTION,
                business_date,
                credit_id=credit.id,
                description="Settlement cascade",
            )
            debited = {debit.account_type for debit in plan}
            self.credits.append_repayment(
                credit,
                collected,
                business_date,
                auto_debited=True,
                from_mandatory_savings=AccountType.MANDATORY_SAVINGS in debited,
                from_caution=AccountType.CAUTION in debited,
            )
            self.notifier.notify(
                credit.customer_id,
                "SETTLEMENT_COLLECTED",
                "Automatic collection",
                f"{fmt_money(collected, credit.currency)} was collected from your savings for your overdue credit.",
                credit_id=credit.id,
                dedupe_key=f"settlement:{credit.id}:{business_date.isoformat()}",
            )
        return collected

    def _sponsor_fallback(self, credit: CreditApplication, collected: int, business_date: date) -> SettlementOutcome:
        currency = Currency(credit.currency)
        paid = self.guarantees.trigger_liability(credit, Money(credit.remaining_cents, currency), business_date)

        if not paid.is_zero():
            self.ledger.credit(
                credit.credit_account_id,
                paid,
                EntryKind.COLLECTION,
                business_date,
                credit_id=credit.id,
                description="Sponsor liability",
            )
            self.credits.append_repayment(credit, paid.amount_cents, business_date, auto_debited=True, paid_by_sponsor=True)
            self.notifier.notify(
                credit.sponsor_id,
                "SPONSOR_LIABILITY",
                "Guarantee called",
                f"{fmt_money(paid.amount_cents, credit.currency)} was debited from your mandatory savings "
                f"to cover a credit you sponsored.",
                credit_id=credit.id,
            )

        if credit.remaining_cents == 0:
            self.credits.complete(credit)
            outcome = "sponsor_covered"
        else:
            self.credits.mark_defaulted(credit, "sponsor guarantee exhausted")
            outcome = "sponsor_shortfall"

        return SettlementOutcome(
            credit_id=credit.id,
            outcome=outcome,
            collected_cents=collected,
            sponsor_paid_cents=paid.amount_cents,
            remaining_cents=credit.remaining_cents,
        )

    def _penalize(self, credit: CreditApplication, collected: int, late_interest_bps: int, business_date: date) -> SettlementOutcome:
        currency = Currency(credit.currency)
        principal_cents = credit.remaining_cents
        surcharge = late_interest(principal_cents, late_interest_bps)
        credit.late_interest_cents += surcharge
        credit.remaining_cents += surcharge

        penalty = credit.processing_fee_cents
        if penalty > 0:
            fines = self.ledger.ensure_account(credit.customer_id, AccountType.FINES, business_date)
            self.ledger.credit(
                fines.id,
                Money(penalty, currency),
                EntryKind.FINE,
                business_date,
                credit_id=credit.id,
                description="Late settlement penalty",
            )

        self.detentions.create(
            customer_id=credit.customer_id,
            credit_id=credit.id,
            currency=credit.currency,
            reason=f"Unpaid balance of {fmt_money(principal_cents, credit.currency)} after maturity",
            principal_cents=principal_cents,
            interest_cents=surcharge,
            penalty_cents=penalty,
            release_conditions="Repay the outstanding balance or obtain an administrative release",
            is_active=True,
            opened_on=business_date,
        )
        self.credits.transition(credit, CreditStatus.VIRTUAL_PRISON)

        self.notifier.notify(
            credit.customer_id,
            "VIRTUAL_DETENTION",
            "Account restricted",
            f"Your credit is overdue. Outstanding: {fmt_money(credit.remaining_cents, credit.currency)} "
            f"including {fmt_money(surcharge, credit.currency)} late interest.",
            credit_id=credit.id,
        )
        return SettlementOutcome(
            credit_id=credit.id,
            outcome="shortfall",
            collected_cents=collected,
            late_interest_cents=surcharge,
            remaining_cents=credit.remaining_cents,
        )
