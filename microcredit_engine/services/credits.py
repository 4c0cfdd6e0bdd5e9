"""Credit lifecycle service - request, review, caution, disbursement, repayment and administrative closure"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from microcredit_engine.domain.exceptions import (
    CurrencyMismatchError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidStateTransitionError,
    NotFoundError,
    OverpaymentError,
)
from microcredit_engine.domain.lifecycle import (
    OUTSTANDING_STATUSES,
    REPAYABLE_STATUSES,
    REVIEWABLE_STATUSES,
    assert_transition,
)
from microcredit_engine.domain.models import (
    AccountType,
    CreditStatus,
    CreditTerms,
    Currency,
    EntryKind,
    Money,
    ProductArgs,
    ProductEligibility,
    ProductType,
    RepaymentStatus,
    RepaymentSummary,
)
from microcredit_engine.domain.products.registry import get_rules
from microcredit_engine.domain.products.sponsor_guaranteed import SponsorGuaranteedRules
from microcredit_engine.domain.settlement import days_late
from microcredit_engine.infrastructure.database.models import CreditApplication, Repayment, VirtualDetention
from microcredit_engine.infrastructure.database.repositories import (
    CreditRepository,
    DetentionRepository,
    RepaymentRepository,
)
from microcredit_engine.infrastructure.observability.logging import log_credit_event
from microcredit_engine.infrastructure.observability.metrics import (
    record_credit_request,
    record_disbursement,
    record_repayment,
)
from microcredit_engine.services.collaborators import AuditRecorder, OutboxNotifier, credit_snapshot
from microcredit_engine.services.eligibility import CustomerFactsReader, EligibilityService
from microcredit_engine.services.guarantees import GuaranteeLedger
from microcredit_engine.services.ledger import AccountLedger

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class CreditRequestOutcome:
    """Result of a credit request; ineligibility is reported here, never raised"""

    accepted: bool
    reasons: List[str] = field(default_factory=list)
    credit: Optional[CreditApplication] = None


def fmt_money(amount_cents: int, currency: str) -> str:
    return f"{amount_cents / 100:.2f} {currency}"


class CreditService:
    """
    Product-agnostic credit lifecycle.

    Every public method is one atomic unit: it mutates the session and
    flushes, the caller commits on success and rolls back on any exception.
    Invalid transitions raise before the first mutation.
    """

    def __init__(
        self,
        db: Session,
        ledger: AccountLedger,
        eligibility: EligibilityService,
        guarantees: GuaranteeLedger,
        notifier: OutboxNotifier,
        audit: AuditRecorder,
        clock: Callable[[], date] = date.today,
    ):
        self.db = db
        self.ledger = ledger
        self.eligibility = eligibility
        self.guarantees = guarantees
        self.notifier = notifier
        self.audit = audit
        self.clock = clock
        self.credits = CreditRepository(db)
        self.repayments = RepaymentRepository(db)
        self.detentions = DetentionRepository(db)

    # ----- lookups -----

    def get_credit(self, credit_id: uuid.UUID, for_update: bool = False) -> CreditApplication:
        credit = self.credits.get(credit_id, for_update=for_update)
        if credit is None:
            raise NotFoundError(f"Credit {credit_id} not found")
        return credit

    def facts(self, customer_id: str) -> CustomerFactsReader:
        return CustomerFactsReader(self.db, self.ledger, self.eligibility, customer_id, self.clock())

    def check_product_eligibility(
        self,
        customer_id: str,
        product: ProductType,
        amount: Money,
        args: ProductArgs,
    ) -> ProductEligibility:
        """Every unmet condition of a product, global standing included"""
        rules = get_rules(product)
        reasons = rules.check_eligibility(self.facts(customer_id), amount, args)
        return ProductEligibility(eligible=not reasons, reasons=reasons)

    # ----- request and review -----

    def request_credit(
        self,
        customer_id: str,
        product: ProductType,
        amount: Money,
        args: ProductArgs,
        documents: Optional[Dict[str, Any]] = None,
    ) -> CreditRequestOutcome:
        """
        Re-validate eligibility and create the application in the same transaction.

        Ineligibility returns the full reason list and writes nothing. An
        eligible request is priced from the product tables and persisted in
        DOCUMENTS_PENDING or CAUTION_PENDING. Sponsored requests lock the
        guarantee before returning.
        """
        product = ProductType(product)
        rules = get_rules(product)
        today = self.clock()

        reasons = rules.check_eligibility(self.facts(customer_id), amount, args)
        if reasons:
            record_credit_request(product.value, accepted=False)
            log_credit_event("request_rejected", None, customer_id, product=product.value, reasons=reasons)
            return CreditRequestOutcome(accepted=False, reasons=reasons)

        terms = rules.quote(amount, args)
        status = rules.initial_status()
        assert_transition(CreditStatus.ELIGIBILITY_CHECK, status)

        mandatory_savings = self.ledger.find_account(customer_id, AccountType.MANDATORY_SAVINGS)
        caution = self.ledger.ensure_account(customer_id, AccountType.CAUTION, today)

        credit = self.credits.create(
            customer_id=customer_id,
            product_type=product.value,
            currency=amount.currency.value,
            status=status.value,
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
            mandatory_savings_account_id=mandatory_savings.id if mandatory_savings else None,
            caution_account_id=caution.id,
            sponsor_id=args.sponsor_id,
            group_id=args.group_id,
            is_renewable=rules.renewable,
            purpose=args.purpose,
            documents=documents,
            requested_on=today,
        )

        if isinstance(rules, SponsorGuaranteedRules):
            self.guarantees.lock_guarantee(
                args.sponsor_id,
                credit,
                rules.guarantee_amount(amount),
                rules.guarantee_bps,
                today,
            )

        if documents and status == CreditStatus.DOCUMENTS_PENDING:
            self.transition(credit, CreditStatus.DOCUMENTS_SUBMITTED)
            credit.documents_submitted_on = today

        self.db.flush()
        record_credit_request(product.value, accepted=True)
        log_credit_event(
            "requested",
            credit.id,
            customer_id,
            product=product.value,
            amount_cents=amount.amount_cents,
            currency=amount.currency.value,
            status=credit.status,
        )
        self.audit.record("credit.request", customer_id, "credit_application", credit.id, after=credit_snapshot(credit))
        self.notifier.notify(
            customer_id,
            "CREDIT_REQUESTED",
            "Credit request received",
            f"Your {product.value} request of {fmt_money(amount.amount_cents, amount.currency.value)} is being processed.",
            credit_id=credit.id,
        )
        return CreditRequestOutcome(accepted=True, credit=credit)

    def submit_documents(self, credit_id: uuid.UUID, documents: Dict[str, Any]) -> CreditApplication:
        credit = self.get_credit(credit_id, for_update=True)
        self.transition(credit, CreditStatus.DOCUMENTS_SUBMITTED)
        credit.documents = documents
        credit.documents_submitted_on = self.clock()
        self.db.flush()
        self.audit.record("credit.documents_submitted", credit.customer_id, "credit_application", credit.id)
        return credit

    def begin_review(self, credit_id: uuid.UUID, reviewer_id: str) -> CreditApplication:
        credit = self.get_credit(credit_id, for_update=True)
        self.transition(credit, CreditStatus.ADMIN_REVIEW)
        credit.reviewer_id = reviewer_id
        self.db.flush()
        return credit

    def validate_documents(
        self,
        credit_id: uuid.UUID,
        reviewer_id: str,
        approved: bool,
        comments: Optional[str] = None,
    ) -> CreditApplication:
        """Approved documents move the credit to CAUTION_PENDING, rejected ones cancel it"""
        credit = self.get_credit(credit_id, for_update=True)
        current = CreditStatus(credit.status)
        if current not in REVIEWABLE_STATUSES:
            raise InvalidStateTransitionError(current.value, "review", "credit is not awaiting document review")

        before = credit_snapshot(credit)
        target = CreditStatus.CAUTION_PENDING if approved else CreditStatus.CANCELLED
        self.transition(credit, target)
        credit.reviewer_id = reviewer_id
        credit.review_comments = comments
        credit.reviewed_on = self.clock()

        if not approved:
            credit.status_reason = comments or "documents rejected"
            credit.closed_on = self.clock()
            self.guarantees.release_guarantee(credit.id, self.clock())

        self.db.flush()
        self.audit.record(
            "credit.documents_approved" if approved else "credit.documents_rejected",
            reviewer_id,
            "credit_application",
            credit.id,
            before,
            credit_snapshot(credit),
        )
        self.notifier.notify(
            credit.customer_id,
            "DOCUMENTS_APPROVED" if approved else "DOCUMENTS_REJECTED",
            "Documents approved" if approved else "Documents rejected",
            (
                f"Please deposit the caution of {fmt_money(credit.caution_cents, credit.currency)}."
                if approved
                else f"Your credit request was rejected: {credit.status_reason}"
            ),
            credit_id=credit.id,
        )
        return credit

    def confirm_caution(self, credit_id: uuid.UUID) -> CreditApplication:
        """CAUTION_PENDING -> APPROVED once the caution account holds the caution amount"""
        credit = self.get_credit(credit_id, for_update=True)
        assert_transition(credit.status, CreditStatus.APPROVED)

        currency = Currency(credit.currency)
        if credit.caution_cents > 0:
            available = self.ledger.available(credit.caution_account_id, currency)
            if available.amount_cents < credit.caution_cents:
                raise InsufficientBalanceError(
                    f"Caution of {fmt_money(credit.caution_cents, credit.currency)} required, "
                    f"caution account holds {fmt_money(available.amount_cents, credit.currency)}"
                )

        self.transition(credit, CreditStatus.APPROVED)
        credit.approved_on = self.clock()
        self.db.flush()
        self.audit.record("credit.approve", SYSTEM_ACTOR, "credit_application", credit.id, after=credit_snapshot(credit))
        self.notifier.notify(
            credit.customer_id,
            "CREDIT_APPROVED",
            "Credit approved",
            f"Your credit of {fmt_money(credit.approved_cents, credit.currency)} is approved.",
            credit_id=credit.id,
        )
        return credit

    # ----- disbursement -----

    def disburse_credit(self, credit_id: uuid.UUID) -> CreditApplication:
        """
        Credit the disbursement account with the approved amount minus fee and
        start the repayment clock. Ledger credit and status change land in the
        same transaction.
        """
        credit = self.get_credit(credit_id, for_update=True)
        assert_transition(credit.status, CreditStatus.DISBURSED)

        rules = get_rules(credit.product_type)
        today = self.clock()
        currency = Currency(credit.currency)
        net_cents = credit.approved_cents - credit.processing_fee_cents

        credit_account = self.ledger.ensure_account(credit.customer_id, AccountType.CREDIT, today)
        if net_cents > 0:
            self.ledger.credit(
                credit_account.id,
                Money(net_cents, currency),
                EntryKind.DISBURSEMENT,
                today,
                credit_id=credit.id,
                description=f"{credit.product_type} disbursement",
            )

        self.transition(credit, CreditStatus.DISBURSED)
        credit.credit_account_id = credit_account.id
        credit.disbursed_cents = net_cents
        credit.disbursed_on = today
        credit.maturity_date = rules.maturity_date(today, self._terms(credit))
        credit.remaining_cents = credit.approved_cents + credit.total_interest_cents
        credit.is_renewable = rules.renewable

        self.eligibility.reserve_credit(credit.customer_id, Money(credit.approved_cents, currency))
        credit.usage_reserved = True
        self.db.flush()

        record_disbursement(credit.product_type, credit.currency, net_cents)
        log_credit_event(
            "disbursed",
            credit.id,
            credit.customer_id,
            product=credit.product_type,
            net_cents=net_cents,
            maturity_date=str(credit.maturity_date),
        )
        self.audit.record("credit.disburse", SYSTEM_ACTOR, "credit_application", credit.id, after=credit_snapshot(credit))
        self.notifier.notify(
            credit.customer_id,
            "CREDIT_DISBURSED",
            "Credit disbursed",
            f"{fmt_money(net_cents, credit.currency)} was credited to your account. "
            f"Repay {fmt_money(credit.remaining_cents, credit.currency)} by {credit.maturity_date.isoformat()}.",
            credit_id=credit.id,
        )
        return credit

    # ----- repayment -----

    def record_repayment(
        self,
        credit_id: uuid.UUID,
        amount: Money,
        source_account: Optional[AccountType] = None,
    ) -> RepaymentSummary:
        """
        Apply a customer payment.

        Rejects currency mismatches and overpayments before any mutation.
        When a source account is given the payment is debited from it;
        the credit account is always credited.
        """
        credit = self.get_credit(credit_id, for_update=True)
        status = CreditStatus(credit.status)
        if status not in REPAYABLE_STATUSES:
            raise InvalidStateTransitionError(status.value, "repayment", "credit is not in repayment")
        if amount.currency.value != credit.currency:
            raise CurrencyMismatchError(f"Credit is in {credit.currency}, payment in {amount.currency.value}")
        if amount.amount_cents <= 0:
            raise InvalidAmountError("Repayment amount must be positive")
        if amount.amount_cents > credit.remaining_cents:
            raise OverpaymentError(
                f"Payment of {fmt_money(amount.amount_cents, credit.currency)} exceeds remaining "
                f"{fmt_money(credit.remaining_cents, credit.currency)}"
            )

        today = self.clock()
        if source_account is not None:
            source = self.ledger.get_account(credit.customer_id, source_account)
            self.ledger.debit(source.id, amount, EntryKind.REPAYMENT, today, credit_id=credit.id)
        self.ledger.credit(credit.credit_account_id, amount, EntryKind.REPAYMENT, today, credit_id=credit.id)

        repayment = self.append_repayment(credit, amount.amount_cents, today)

        if credit.remaining_cents == 0:
            self.settle_in_full(credit)
        elif status == CreditStatus.DISBURSED:
            self.transition(credit, CreditStatus.ACTIVE)
        self.db.flush()

        record_repayment(credit.product_type, repayment.is_on_time)
        log_credit_event(
            "repayment",
            credit.id,
            credit.customer_id,
            amount_cents=amount.amount_cents,
            remaining_cents=credit.remaining_cents,
            on_time=repayment.is_on_time,
        )
        self.notifier.notify(
            credit.customer_id,
            "REPAYMENT_RECEIVED",
            "Repayment received",
            f"We received {fmt_money(amount.amount_cents, credit.currency)}. "
            f"Remaining: {fmt_money(credit.remaining_cents, credit.currency)}.",
            credit_id=credit.id,
        )
        return RepaymentSummary(
            credit_id=credit.id,
            paid=amount,
            total_paid=Money(credit.total_paid_cents, amount.currency),
            remaining=Money(credit.remaining_cents, amount.currency),
            status=CreditStatus(credit.status),
            on_time=repayment.is_on_time,
            days_late=repayment.days_late,
        )

    def append_repayment(
        self,
        credit: CreditApplication,
        amount_cents: int,
        paid_on: date,
        auto_debited: bool = False,
        from_mandatory_savings: bool = False,
        from_caution: bool = False,
        paid_by_sponsor: bool = False,
    ) -> Repayment:
        """Record a payment event and update the running totals"""
        late_days = days_late(credit.maturity_date, paid_on)
        on_time = late_days == 0
        repayment = self.repayments.create(
            credit_id=credit.id,
            customer_id=credit.customer_id,
            amount_cents=amount_cents,
            currency=credit.currency,
            paid_on=paid_on,
            status=(RepaymentStatus.ON_TIME if on_time else RepaymentStatus.LATE).value,
            is_on_time=on_time,
            days_late=late_days,
            auto_debited=auto_debited,
            from_mandatory_savings=from_mandatory_savings,
            from_caution=from_caution,
            paid_by_sponsor=paid_by_sponsor,
        )
        credit.total_paid_cents += amount_cents
        credit.remaining_cents -= amount_cents
        return repayment

    def settle_in_full(self, credit: CreditApplication) -> None:
        """
        Close out a credit whose remaining balance reached zero.

        Renewable credits that are still outstanding stay open at zero for
        the renewal pass; everything else completes now.
        """
        self._release_usage(credit)
        status = CreditStatus(credit.status)
        if credit.is_renewable and status in OUTSTANDING_STATUSES:
            if status == CreditStatus.DISBURSED:
                self.transition(credit, CreditStatus.ACTIVE)
            return
        self.complete(credit)

    def complete(self, credit: CreditApplication) -> None:
        """COMPLETED with every side effect: guarantee released, detention closed, statistics refreshed"""
        today = self.clock()
        self.transition(credit, CreditStatus.COMPLETED)
        credit.closed_on = today
        self._release_usage(credit)
        self.guarantees.release_guarantee(credit.id, today)
        self._close_detention(credit, SYSTEM_ACTOR, "debt repaid")
        self.db.flush()

        self.eligibility.refresh_statistics(credit.customer_id)
        log_credit_event("completed", credit.id, credit.customer_id, total_paid_cents=credit.total_paid_cents)
        self.notifier.notify(
            credit.customer_id,
            "CREDIT_COMPLETED",
            "Credit completed",
            "Your credit is fully repaid. Thank you.",
            credit_id=credit.id,
        )

    # ----- administrative actions -----

    def cancel_credit(self, credit_id: uuid.UUID, actor_id: str, reason: str) -> CreditApplication:
        """
        Cancel a credit. A disbursed credit can only be cancelled while
        nothing has been repaid; the net disbursement is reversed out of the
        credit account.
        """
        credit = self.get_credit(credit_id, for_update=True)
        assert_transition(credit.status, CreditStatus.CANCELLED)
        before = credit_snapshot(credit)
        today = self.clock()

        if credit.disbursed_on is not None:
            if credit.total_paid_cents > 0 or self.repayments.count_by_credit(credit.id) > 0:
                raise InvalidStateTransitionError(
                    credit.status, CreditStatus.CANCELLED.value, "repayments were already recorded"
                )
            if credit.disbursed_cents > 0:
                self.ledger.debit(
                    credit.credit_account_id,
                    Money(credit.disbursed_cents, Currency(credit.currency)),
                    EntryKind.REVERSAL,
                    today,
                    credit_id=credit.id,
                    description=f"Cancellation: {reason}",
                )
            credit.remaining_cents = 0
            self._release_usage(credit)
            self._close_detention(credit, actor_id, "credit cancelled")

        self.transition(credit, CreditStatus.CANCELLED)
        credit.status_reason = reason
        credit.closed_on = today
        self.guarantees.release_guarantee(credit.id, today)
        self.db.flush()

        self.audit.record("credit.cancel", actor_id, "credit_application", credit.id, before, credit_snapshot(credit))
        self.notifier.notify(
            credit.customer_id,
            "CREDIT_CANCELLED",
            "Credit cancelled",
            f"Your credit was cancelled: {reason}",
            credit_id=credit.id,
        )
        return credit

    def declare_default(self, credit_id: uuid.UUID, actor_id: str, reason: str) -> CreditApplication:
        credit = self.get_credit(credit_id, for_update=True)
        before = credit_snapshot(credit)
        self.mark_defaulted(credit, reason)
        self.audit.record("credit.default", actor_id, "credit_application", credit.id, before, credit_snapshot(credit))
        return credit

    def mark_defaulted(self, credit: CreditApplication, reason: str) -> None:
        """Write a credit off as DEFAULTED; its credit-line usage stays consumed"""
        today = self.clock()
        self.transition(credit, CreditStatus.DEFAULTED)
        credit.status_reason = reason
        credit.closed_on = today
        self.guarantees.release_guarantee(credit.id, today)
        self._close_detention(credit, SYSTEM_ACTOR, "credit defaulted")
        self.db.flush()

        self.eligibility.refresh_statistics(credit.customer_id)
        log_credit_event("defaulted", credit.id, credit.customer_id, remaining_cents=credit.remaining_cents, reason=reason)
        self.notifier.notify(
            credit.customer_id,
            "CREDIT_DEFAULTED",
            "Credit in default",
            f"Your credit is in default with {fmt_money(credit.remaining_cents, credit.currency)} outstanding.",
            credit_id=credit.id,
        )

    def refer_to_legal(self, credit_id: uuid.UUID, actor_id: str, reason: str) -> CreditApplication:
        credit = self.get_credit(credit_id, for_update=True)
        before = credit_snapshot(credit)
        self.transition(credit, CreditStatus.LEGAL_PURSUIT)
        credit.status_reason = reason
        credit.closed_on = self.clock()
        self._close_detention(credit, actor_id, "referred to legal pursuit")
        self.db.flush()

        self.eligibility.refresh_statistics(credit.customer_id)
        self.audit.record("credit.legal_pursuit", actor_id, "credit_application", credit.id, before, credit_snapshot(credit))
        log_credit_event("legal_pursuit", credit.id, credit.customer_id, remaining_cents=credit.remaining_cents)
        return credit

    def release_detention(self, credit_id: uuid.UUID, actor_id: str, reason: str) -> VirtualDetention:
        """Administrative release; the credit's status and balance are unchanged"""
        credit = self.get_credit(credit_id, for_update=True)
        detention = self.detentions.get_active(credit.customer_id, credit.id)
        if detention is None:
            raise NotFoundError(f"No active detention for credit {credit_id}")

        self._close_detention(credit, actor_id, reason)
        self.db.flush()
        self.audit.record(
            "detention.release",
            actor_id,
            "virtual_detention",
            detention.id,
            before={"is_active": True},
            after={"is_active": False, "reason": reason},
        )
        self.notifier.notify(
            credit.customer_id,
            "DETENTION_RELEASED",
            "Restriction lifted",
            "The restriction on your account was lifted.",
            credit_id=credit.id,
        )
        return detention

    # ----- helpers -----

    def transition(self, credit: CreditApplication, target: CreditStatus) -> None:
        assert_transition(credit.status, target)
        credit.status = target.value
        self.db.flush()

    def _release_usage(self, credit: CreditApplication) -> None:
        if credit.usage_reserved:
            self.eligibility.release_credit(credit.customer_id, Money(credit.approved_cents, Currency(credit.currency)))
            credit.usage_reserved = False

    def _close_detention(self, credit: CreditApplication, actor_id: str, reason: str) -> Optional[VirtualDetention]:
        detention = self.detentions.get_active(credit.customer_id, credit.id)
        if detention is None:
            return None
        detention.is_active = False
        detention.released_on = self.clock()
        detention.released_by = actor_id
        detention.release_reason = reason
        return detention

    @staticmethod
    def _terms(credit: CreditApplication) -> CreditTerms:
        currency = Currency(credit.currency)
        return CreditTerms(
            amount=Money(credit.approved_cents, currency),
            processing_fee=Money(credit.processing_fee_cents, currency),
            interest_rate_bps=credit.interest_rate_bps,
            total_interest=Money(credit.total_interest_cents, currency),
            caution_bps=credit.caution_bps,
            caution_amount=Money(credit.caution_cents, currency),
            duration_months=credit.duration_months,
            duration_days=credit.duration_days,
            installment=Money(credit.installment_cents, currency) if credit.installment_cents is not None else None,
        )
