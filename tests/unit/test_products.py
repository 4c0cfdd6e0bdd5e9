"""Unit tests for product rule tables and eligibility predicates"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

import pytest
from microcredit_engine.domain.exceptions import CurrencyMismatchError, InvalidAmountError
from microcredit_engine.domain.models import (
    CreditStatus,
    Currency,
    CustomerCategory,
    Money,
    ProductArgs,
    percent_of,
)
from microcredit_engine.domain.products.base import GroupFacts, SponsorFacts
from microcredit_engine.domain.products.group_savings import GroupSavingsRules
from microcredit_engine.domain.products.individual_term import IndividualTermRules
from microcredit_engine.domain.products.seasonal import SeasonalRules
from microcredit_engine.domain.products.short_overdraft import ShortOverdraftRules
from microcredit_engine.domain.products.sponsor_guaranteed import SponsorGuaranteedRules


def usd(cents: int) -> Money:
    return Money(cents, Currency.USD)


def cdf(cents: int) -> Money:
    return Money(cents, Currency.CDF)


@dataclass
class FakeFacts:
    """In-memory customer facts"""

    customer_id: str = "cust-1"
    savings: Dict[Currency, int] = field(default_factory=dict)
    days: int = 30
    weeks: int = 7
    recent_default: bool = False
    detained: bool = False
    cycles: int = 0
    tenure: int = 365
    kyc: int = 1
    standing: List[str] = field(default_factory=list)
    sponsors: Dict[str, SponsorFacts] = field(default_factory=dict)
    groups: Dict[uuid.UUID, GroupFacts] = field(default_factory=dict)

    def mandatory_savings_available(self, currency: Currency) -> Money:
        return Money(self.savings.get(currency, 0), currency)

    def deposit_days(self, window_days: int) -> int:
        return self.days

    def deposit_weeks(self, window_days: int) -> int:
        return self.weeks

    def has_recent_default(self, months: int) -> bool:
        return self.recent_default

    def in_detention(self) -> bool:
        return self.detained

    def completed_savings_cycles(self) -> int:
        return self.cycles

    def tenure_days(self) -> int:
        return self.tenure

    def kyc_level(self) -> int:
        return self.kyc

    def standing_reasons(self, amount: Money) -> List[str]:
        return list(self.standing)

    def sponsor(self, sponsor_id: str, currency: Currency) -> Optional[SponsorFacts]:
        return self.sponsors.get(sponsor_id)

    def group(self, group_id: uuid.UUID, currency: Currency) -> Optional[GroupFacts]:
        return self.groups.get(group_id)


# ----- money -----


def test_percent_of_rounds_half_up():
    assert percent_of(10_000, 3000) == 3_000
    assert percent_of(1_005, 5000) == 503  # 502.5
    assert percent_of(333, 150) == 5  # 4.995


def test_money_never_combines_currencies():
    with pytest.raises(CurrencyMismatchError):
        usd(100) + cdf(100)


# ----- short overdraft -----


class TestShortOverdraft:
    rules = ShortOverdraftRules()

    @pytest.mark.parametrize(
        "amount,fee",
        [(1_000, 200), (2_000, 200), (2_001, 400), (5_000, 400), (5_001, 800), (10_000, 800)],
    )
    def test_fee_bands(self, amount, fee):
        assert self.rules.processing_fee(amount) == fee

    def test_amount_outside_bands_is_rejected(self):
        with pytest.raises(InvalidAmountError):
            self.rules.processing_fee(10_001)

    def test_quote_repays_everything_next_day(self):
        terms = self.rules.quote(usd(10_000), ProductArgs())

        assert terms.processing_fee == usd(800)
        assert terms.net_amount == usd(9_200)
        assert terms.total_interest == usd(0)
        assert terms.installment == usd(10_000)
        assert terms.caution_amount == usd(3_000)
        assert terms.duration_days == 1
        assert self.rules.maturity_date(date(2026, 3, 2), terms) == date(2026, 3, 3)

    def test_eligible_customer(self):
        facts = FakeFacts(savings={Currency.USD: 5_000}, days=26)
        assert self.rules.check_eligibility(facts, usd(10_000), ProductArgs()) == []

    def test_reports_every_unmet_condition(self):
        facts = FakeFacts(
            savings={Currency.USD: 4_999},
            days=25,
            recent_default=True,
            detained=True,
            standing=["score below minimum 30"],
        )
        reasons = self.rules.check_eligibility(facts, usd(10_000), ProductArgs())

        assert len(reasons) == 5
        assert reasons[0].startswith("mandatory savings balance insufficient")
        assert "26 deposit days required" in reasons[1]
        assert reasons[-1] == "score below minimum 30"

    def test_wrong_currency_is_rejected(self):
        reasons = self.rules.check_eligibility(FakeFacts(), cdf(10_000), ProductArgs())
        assert reasons == ["SHORT_OVERDRAFT credits are only granted in USD"]

    def test_renewable_with_documents(self):
        assert self.rules.renewable
        assert self.rules.initial_status() == CreditStatus.DOCUMENTS_PENDING


# ----- individual term -----


class TestIndividualTerm:
    rules = IndividualTermRules()

    def test_quote_for_twelve_months(self):
        terms = self.rules.quote(usd(100_000), ProductArgs(duration_months=12))

        assert terms.processing_fee == usd(5_500)
        assert terms.interest_rate_bps == 500
        assert terms.total_interest == usd(5_000)
        assert terms.installment == usd(8_750)
        assert terms.caution_amount == usd(30_000)

    @pytest.mark.parametrize(
        "amount,months,rate",
        [(50_000, 6, 500), (50_001, 6, 450), (20_000, 9, 530), (150_000, 9, 480), (30_000, 12, 550)],
    )
    def test_rate_table(self, amount, months, rate):
        assert self.rules.interest_rate_bps(amount, months) == rate

    def test_maturity_options_cover_every_duration(self):
        options = self.rules.maturity_options(usd(40_000))

        assert [terms.duration_months for terms in options] == [6, 9, 12]
        assert [terms.interest_rate_bps for terms in options] == [500, 530, 550]
        assert all(terms.processing_fee == usd(2_500) for terms in options)

    def test_maturity_options_reject_out_of_range_amounts(self):
        with pytest.raises(InvalidAmountError):
            self.rules.maturity_options(usd(150_001))

    def test_unsupported_duration_is_an_eligibility_reason(self):
        facts = FakeFacts(savings={Currency.USD: 30_000}, weeks=6)
        reasons = self.rules.check_eligibility(facts, usd(100_000), ProductArgs(duration_months=7))
        assert reasons == ["duration must be one of 6, 9, 12 months"]

    def test_deposit_weeks_and_savings(self):
        facts = FakeFacts(savings={Currency.USD: 29_999}, weeks=5)
        reasons = self.rules.check_eligibility(facts, usd(100_000), ProductArgs(duration_months=6))

        assert len(reasons) == 2
        assert "6 deposit weeks required" in reasons[1]

    def test_maturity_date_adds_calendar_months(self):
        terms = self.rules.quote(usd(40_000), ProductArgs(duration_months=6))
        assert self.rules.maturity_date(date(2026, 8, 31), terms) == date(2027, 2, 28)
        assert self.rules.maturity_date(date(2027, 8, 31), terms) == date(2028, 2, 29)


# ----- sponsor guaranteed -----


class TestSponsorGuaranteed:
    rules = SponsorGuaranteedRules(max_active_guarantees=3)

    def gold_sponsor(self, active: int = 0, savings: int = 20_000) -> SponsorFacts:
        return SponsorFacts(
            sponsor_id="sponsor-1",
            category=CustomerCategory.GOLD,
            active_guarantees=active,
            available_mandatory_savings=usd(savings),
        )

    def test_quote_uses_reduced_rates(self):
        terms = self.rules.quote(usd(50_000), ProductArgs(duration_months=6, sponsor_id="sponsor-1"))

        assert terms.interest_rate_bps == 150
        assert terms.total_interest == usd(750)
        assert terms.processing_fee == usd(3_000)
        assert self.rules.guarantee_amount(usd(50_000)) == usd(20_000)
        assert self.rules.initial_status() == CreditStatus.CAUTION_PENDING

    def test_eligible_with_gold_sponsor(self):
        facts = FakeFacts(savings={Currency.USD: 5_000}, sponsors={"sponsor-1": self.gold_sponsor()})
        args = ProductArgs(duration_months=6, sponsor_id="sponsor-1")
        assert self.rules.check_eligibility(facts, usd(50_000), args) == []

    def test_sponsor_conditions(self):
        sponsor = SponsorFacts(
            sponsor_id="sponsor-1",
            category=CustomerCategory.STANDARD,
            active_guarantees=3,
            available_mandatory_savings=usd(19_999),
        )
        facts = FakeFacts(savings={Currency.USD: 5_000}, sponsors={"sponsor-1": sponsor})
        reasons = self.rules.check_eligibility(facts, usd(50_000), ProductArgs(duration_months=6, sponsor_id="sponsor-1"))

        assert reasons == [
            "sponsor must be a GOLD customer",
            "sponsor already guarantees 3 credits (maximum 3)",
            "sponsor mandatory savings insufficient: required 200.00, available 199.99",
        ]

    def test_missing_or_self_sponsor(self):
        facts = FakeFacts(savings={Currency.USD: 5_000}, kyc=0)
        assert self.rules.check_eligibility(facts, usd(50_000), ProductArgs(duration_months=6)) == [
            "KYC level 1 required",
            "a GOLD sponsor is required",
        ]
        reasons = self.rules.check_eligibility(facts, usd(50_000), ProductArgs(duration_months=6, sponsor_id="cust-1"))
        assert "a customer cannot sponsor their own credit" in reasons


# ----- seasonal -----


class TestSeasonal:
    rules = SeasonalRules()

    def test_fixed_amounts_only(self):
        facts = FakeFacts(savings={Currency.CDF: 10_000_000}, cycles=5)
        assert self.rules.check_eligibility(facts, cdf(10_000_000), ProductArgs()) == []
        reasons = self.rules.check_eligibility(facts, cdf(12_000_000), ProductArgs())
        assert reasons[0].startswith("amount must be one of")

    def test_quote(self):
        terms = self.rules.quote(cdf(10_000_000), ProductArgs())

        assert terms.processing_fee == cdf(800_000)
        assert terms.total_interest == cdf(300_000)
        assert terms.duration_months == 3
        assert terms.installment == cdf(3_433_333)

    def test_cycles_and_tenure(self):
        facts = FakeFacts(savings={Currency.CDF: 3_000_000}, cycles=4, tenure=89)
        reasons = self.rules.check_eligibility(facts, cdf(10_000_000), ProductArgs())

        assert reasons == [
            "5 completed programmed-savings cycles required (current: 4)",
            "account must be at least 90 days old (current: 89)",
        ]

    def test_usd_is_rejected(self):
        reasons = self.rules.check_eligibility(FakeFacts(), usd(5_000_000), ProductArgs())
        assert reasons == ["SEASONAL credits are only granted in CDF"]


# ----- group savings -----


class TestGroupSavings:
    rules = GroupSavingsRules()
    group_id = uuid.uuid4()

    def facts(self, pooled: int, is_member: bool = True, is_active: bool = True) -> FakeFacts:
        group = GroupFacts(
            group_id=self.group_id,
            is_active=is_active,
            is_member=is_member,
            member_count=5,
            pooled_savings=usd(pooled),
        )
        return FakeFacts(groups={self.group_id: group})

    def test_ceiling_is_80_percent_of_pooled_savings(self):
        args = ProductArgs(group_id=self.group_id)
        assert self.rules.check_eligibility(self.facts(100_000), usd(80_000), args) == []

        reasons = self.rules.check_eligibility(self.facts(100_000), usd(80_001), args)
        assert reasons == ["amount exceeds 80% of pooled group savings (maximum 800.00)"]

    def test_membership_and_activity(self):
        args = ProductArgs(group_id=self.group_id)
        assert self.rules.check_eligibility(self.facts(100_000, is_member=False), usd(1_000), args) == [
            "customer is not a member of this group"
        ]
        assert self.rules.check_eligibility(self.facts(100_000, is_active=False), usd(1_000), args) == [
            "savings group is not active"
        ]
        assert self.rules.check_eligibility(FakeFacts(), usd(1_000), ProductArgs()) == ["a savings group is required"]

    def test_quote(self):
        terms = self.rules.quote(usd(50_000), ProductArgs(group_id=self.group_id))

        assert terms.processing_fee == usd(750)
        assert terms.total_interest == usd(1_000)
        assert terms.caution_amount == usd(0)
        assert terms.duration_months == 6
