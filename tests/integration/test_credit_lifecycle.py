"""Integration tests for the credit lifecycle: request, review, caution, disbursement, repayment and closure"""

import pytest
import uuid
from datetime import timedelta
from microcredit_engine.domain.exceptions import (
    CurrencyMismatchError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    NotFoundError,
    OverpaymentError,
)
from microcredit_engine.domain.models import AccountType, CreditStatus, Currency, Money, ProductArgs, ProductType


def usd(cents: int) -> Money:
    return Money(cents, Currency.USD)


def balance(services, customer_id: str, account_type: AccountType) -> int:
    account = services.ledger.get_account(customer_id, account_type)
    return services.ledger.get_balance(account.id, Currency.USD).amount_cents


def request_overdraft(services, customer_id: str, amount_cents: int = 10_000, documents=None):
    outcome = services.credits.request_credit(
        customer_id,
        ProductType.SHORT_OVERDRAFT,
        usd(amount_cents),
        ProductArgs(),
        documents=documents,
    )
    assert outcome.accepted, outcome.reasons
    return outcome.credit


class TestRequest:
    def test_request_is_priced_from_product_tables(self, services, overdraft_customer):
        credit = request_overdraft(services, overdraft_customer)

        assert credit.status == "DOCUMENTS_PENDING"
        assert credit.processing_fee_cents == 800
        assert credit.caution_cents == 3_000
        assert credit.total_interest_cents == 0
        assert credit.duration_days == 1
        assert credit.remaining_cents == 0

    def test_documents_with_request_are_submitted(self, services, overdraft_customer, today):
        credit = request_overdraft(services, overdraft_customer, documents={"id_card": "scan.pdf"})

        assert credit.status == "DOCUMENTS_SUBMITTED"
        assert credit.documents_submitted_on == today

    def test_ineligible_request_writes_nothing(self, services, make_customer):
        make_customer("cust-1")

        outcome = services.credits.request_credit("cust-1", ProductType.SHORT_OVERDRAFT, usd(10_000), ProductArgs())

        assert outcome.accepted is False
        assert outcome.credit is None
        assert len(outcome.reasons) == 2
        assert services.credits.credits.list_by_customer("cust-1") == []

    def test_unknown_credit(self, services):
        with pytest.raises(NotFoundError):
            services.credits.get_credit(uuid.uuid4())


class TestReview:
    def test_documents_submitted_later(self, services, overdraft_customer):
        credit = request_overdraft(services, overdraft_customer)

        credit = services.credits.submit_documents(credit.id, {"id_card": "scan.pdf"})

        assert credit.status == "DOCUMENTS_SUBMITTED"
        assert credit.documents == {"id_card": "scan.pdf"}

    def test_review_approval_waits_for_caution(self, services, overdraft_customer, today):
        credit = request_overdraft(services, overdraft_customer, documents={"id_card": "scan.pdf"})

        services.credits.begin_review(credit.id, "reviewer-1")
        assert credit.status == "ADMIN_REVIEW"

        credit = services.credits.validate_documents(credit.id, "reviewer-1", approved=True, comments="ok")
        assert credit.status == "CAUTION_PENDING"
        assert credit.reviewed_on == today
        assert credit.review_comments == "ok"

    def test_review_rejection_cancels(self, services, overdraft_customer):
        credit = request_overdraft(services, overdraft_customer, documents={"id_card": "scan.pdf"})

        credit = services.credits.validate_documents(credit.id, "reviewer-1", approved=False, comments="blurry scan")

        assert credit.status == "CANCELLED"
        assert credit.status_reason == "blurry scan"
        with pytest.raises(InvalidStateTransitionError):
            services.credits.confirm_caution(credit.id)

    def test_cannot_review_twice(self, services, overdraft_customer):
        credit = request_overdraft(services, overdraft_customer, documents={"id_card": "scan.pdf"})
        services.credits.validate_documents(credit.id, "reviewer-1", approved=True)

        with pytest.raises(InvalidStateTransitionError):
            services.credits.validate_documents(credit.id, "reviewer-1", approved=True)


class TestCautionAndDisbursement:
    def test_caution_must_be_deposited(self, services, overdraft_customer, deposit):
        credit = request_overdraft(services, overdraft_customer, documents={"id_card": "scan.pdf"})
        services.credits.validate_documents(credit.id, "reviewer-1", approved=True)
        deposit(overdraft_customer, AccountType.CAUTION, 2_999)

        with pytest.raises(InsufficientBalanceError):
            services.credits.confirm_caution(credit.id)
        assert credit.status == "CAUTION_PENDING"

        deposit(overdraft_customer, AccountType.CAUTION, 1)
        assert services.credits.confirm_caution(credit.id).status == "APPROVED"

    def test_cannot_disburse_before_approval(self, services, overdraft_customer):
        credit = request_overdraft(services, overdraft_customer)

        with pytest.raises(InvalidStateTransitionError):
            services.credits.disburse_credit(credit.id)
        assert balance(services, overdraft_customer, AccountType.CREDIT) == 0

    def test_overdraft_end_to_end(self, services, overdraft_customer, disbursed_credit, today):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        assert credit.status == "DISBURSED"
        assert credit.disbursed_cents == 9_200
        assert credit.remaining_cents == 10_000
        assert credit.disbursed_on == today
        assert credit.maturity_date == today + timedelta(days=1)
        assert balance(services, overdraft_customer, AccountType.CREDIT) == 9_200
        assert balance(services, overdraft_customer, AccountType.CAUTION) == 3_000

        line = services.eligibility.check_eligibility(overdraft_customer, usd(1))
        assert line.used == usd(10_000)

        notifications = {row.event_type for row in services.notifier.webhooks.list_by_customer(overdraft_customer)}
        assert {"CREDIT_REQUESTED", "DOCUMENTS_APPROVED", "CREDIT_APPROVED", "CREDIT_DISBURSED"} <= notifications

    def test_term_credit_schedule(self, services, make_customer, deposit, disbursed_credit, today):
        make_customer("cust-term")
        deposit("cust-term", AccountType.MANDATORY_SAVINGS, 30_000, days=1)
        for week in range(6):
            deposit("cust-term", AccountType.MANDATORY_SAVINGS, 1_000, end=today - timedelta(weeks=week))

        credit = disbursed_credit(
            "cust-term", ProductType.INDIVIDUAL_TERM, usd(100_000), ProductArgs(duration_months=12)
        )

        assert credit.processing_fee_cents == 5_500
        assert credit.total_interest_cents == 5_000
        assert credit.installment_cents == 8_750
        assert credit.remaining_cents == 105_000
        assert credit.maturity_date.year == today.year + 1


class TestRepayment:
    def test_partial_repayment_activates(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        summary = services.credits.record_repayment(credit.id, usd(4_000))

        assert summary.status == CreditStatus.ACTIVE
        assert summary.remaining == usd(6_000)
        assert summary.total_paid == usd(4_000)
        assert summary.on_time is True
        assert balance(services, overdraft_customer, AccountType.CREDIT) == 13_200

    def test_full_repayment_keeps_renewable_credit_open(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        summary = services.credits.record_repayment(credit.id, usd(10_000))

        assert summary.remaining == usd(0)
        assert summary.status == CreditStatus.ACTIVE
        assert services.eligibility.check_eligibility(overdraft_customer, usd(1)).used == usd(0)

    def test_repayment_from_source_account(self, services, overdraft_customer, disbursed_credit, deposit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        with pytest.raises(InsufficientBalanceError):
            services.credits.record_repayment(credit.id, usd(2_000), source_account=AccountType.STANDARD)

        deposit(overdraft_customer, AccountType.STANDARD, 2_000)
        services.credits.record_repayment(credit.id, usd(2_000), source_account=AccountType.STANDARD)
        assert balance(services, overdraft_customer, AccountType.STANDARD) == 0

    def test_overpayment_is_rejected(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        with pytest.raises(OverpaymentError):
            services.credits.record_repayment(credit.id, usd(10_001))
        assert credit.remaining_cents == 10_000
        assert credit.total_paid_cents == 0

    def test_currency_mismatch_is_rejected(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        with pytest.raises(CurrencyMismatchError):
            services.credits.record_repayment(credit.id, Money(5_000, Currency.CDF))

    def test_no_repayment_before_disbursement(self, services, overdraft_customer):
        credit = request_overdraft(services, overdraft_customer)

        with pytest.raises(InvalidStateTransitionError):
            services.credits.record_repayment(credit.id, usd(100))


class TestAdministrativeClosure:
    def test_cancel_disbursed_credit_reverses_disbursement(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        credit = services.credits.cancel_credit(credit.id, "admin-1", "customer withdrew")

        assert credit.status == "CANCELLED"
        assert credit.status_reason == "customer withdrew"
        assert credit.remaining_cents == 0
        assert balance(services, overdraft_customer, AccountType.CREDIT) == 0
        assert services.eligibility.check_eligibility(overdraft_customer, usd(1)).used == usd(0)

    def test_cannot_cancel_after_repayment(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))
        services.credits.record_repayment(credit.id, usd(1_000))

        with pytest.raises(InvalidStateTransitionError):
            services.credits.cancel_credit(credit.id, "admin-1", "too late")
        assert credit.status == "ACTIVE"

    def test_declare_default_updates_profile(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        credit = services.credits.declare_default(credit.id, "admin-1", "unreachable")

        assert credit.status == "DEFAULTED"
        profile = services.eligibility.get_profile(overdraft_customer)
        assert profile.defaulted_loans == 1
        assert profile.total_loans == 1
        assert profile.score == 0
        # Defaulted usage stays consumed
        assert services.eligibility.check_eligibility(overdraft_customer, usd(1)).used == usd(10_000)

    def test_recent_default_blocks_new_overdraft(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))
        services.credits.declare_default(credit.id, "admin-1", "unreachable")

        result = services.credits.check_product_eligibility(
            overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(2_000), ProductArgs()
        )

        assert "payment default in the last 6 months" in result.reasons
        assert "score below minimum 30" in result.reasons

    def test_legal_pursuit_requires_detention(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        with pytest.raises(InvalidStateTransitionError):
            services.credits.refer_to_legal(credit.id, "admin-1", "no contact")

    def test_release_without_detention(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))

        with pytest.raises(NotFoundError):
            services.credits.release_detention(credit.id, "admin-1", "goodwill")

    def test_terminal_credit_rejects_actions(self, services, overdraft_customer, disbursed_credit):
        credit = disbursed_credit(overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000))
        services.credits.declare_default(credit.id, "admin-1", "unreachable")

        with pytest.raises(InvalidStateTransitionError):
            services.credits.cancel_credit(credit.id, "admin-1", "cleanup")
        with pytest.raises(InvalidStateTransitionError):
            services.credits.record_repayment(credit.id, usd(100))


class TestSponsorGuarantee:
    @pytest.fixture
    def sponsored(self, make_customer, deposit):
        make_customer("sponsor-gold", category="GOLD")
        deposit("sponsor-gold", AccountType.MANDATORY_SAVINGS, 20_000)
        make_customer("cust-sponsored", kyc_level=1)
        deposit("cust-sponsored", AccountType.MANDATORY_SAVINGS, 15_000)
        return ProductArgs(duration_months=6, sponsor_id="sponsor-gold")

    def test_request_holds_sponsor_savings(self, services, sponsored):
        outcome = services.credits.request_credit(
            "cust-sponsored", ProductType.SPONSOR_GUARANTEED, usd(50_000), sponsored
        )

        assert outcome.accepted, outcome.reasons
        assert outcome.credit.status == "CAUTION_PENDING"
        account = services.ledger.get_account("sponsor-gold", AccountType.MANDATORY_SAVINGS)
        assert services.ledger.get_held(account.id, Currency.USD) == usd(20_000)
        assert services.ledger.available(account.id, Currency.USD) == usd(0)

        guarantee = services.guarantees.guarantees.get_by_credit(outcome.credit.id)
        assert guarantee.is_active is True
        assert guarantee.locked_cents == 20_000

    def test_held_savings_cannot_be_pledged_twice(self, services, sponsored, make_customer, deposit):
        services.credits.request_credit("cust-sponsored", ProductType.SPONSOR_GUARANTEED, usd(50_000), sponsored)
        make_customer("cust-other", kyc_level=1)
        deposit("cust-other", AccountType.MANDATORY_SAVINGS, 5_000)

        outcome = services.credits.request_credit("cust-other", ProductType.SPONSOR_GUARANTEED, usd(50_000), sponsored)

        assert outcome.accepted is False
        assert "sponsor mandatory savings insufficient: required 200.00, available 0.00" in outcome.reasons

    def test_cancellation_releases_hold(self, services, sponsored):
        outcome = services.credits.request_credit(
            "cust-sponsored", ProductType.SPONSOR_GUARANTEED, usd(50_000), sponsored
        )

        services.credits.cancel_credit(outcome.credit.id, "admin-1", "changed mind")

        account = services.ledger.get_account("sponsor-gold", AccountType.MANDATORY_SAVINGS)
        assert services.ledger.available(account.id, Currency.USD) == usd(20_000)
        assert services.guarantees.guarantees.count_active("sponsor-gold") == 0

    def test_standard_sponsor_is_rejected(self, services, make_customer, deposit):
        make_customer("sponsor-std")
        deposit("sponsor-std", AccountType.MANDATORY_SAVINGS, 20_000)
        make_customer("cust-1", kyc_level=1)
        deposit("cust-1", AccountType.MANDATORY_SAVINGS, 5_000)

        outcome = services.credits.request_credit(
            "cust-1",
            ProductType.SPONSOR_GUARANTEED,
            usd(50_000),
            ProductArgs(duration_months=6, sponsor_id="sponsor-std"),
        )

        assert outcome.reasons == ["sponsor must be a GOLD customer"]
