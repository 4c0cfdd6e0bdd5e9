"""Common contract for credit product rules"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Protocol, Sequence, Tuple

from dateutil.relativedelta import relativedelta

from microcredit_engine.domain.exceptions import InvalidAmountError
from microcredit_engine.domain.models import (
    CreditStatus,
    CreditTerms,
    Currency,
    CustomerCategory,
    Money,
    ProductArgs,
    ProductType,
    percent_of,
)

# (lowest amount, highest amount, value), bounds inclusive, in minor units
Band = Tuple[int, int, int]


def lookup_band(table: Sequence[Band], amount_cents: int, label: str) -> int:
    """Exact-match band lookup. Amounts between or outside bands are rejected, never interpolated."""
    for low, high, value in table:
        if low <= amount_cents <= high:
            return value
    raise InvalidAmountError(f"No {label} band for amount {amount_cents / 100:.2f}")


def fmt(amount_cents: int) -> str:
    return f"{amount_cents / 100:.2f}"


@dataclass
class SponsorFacts:
    """What product rules need to know about a prospective guarantor"""

    sponsor_id: str
    category: CustomerCategory
    active_guarantees: int
    available_mandatory_savings: Money


@dataclass
class GroupFacts:
    """What product rules need to know about a savings group"""

    group_id: uuid.UUID
    is_active: bool
    is_member: bool
    member_count: int
    pooled_savings: Money


class CustomerFacts(Protocol):
    """Read-only view of a customer's state used by eligibility rules"""

    customer_id: str

    def mandatory_savings_available(self, currency: Currency) -> Money: ...

    def deposit_days(self, window_days: int) -> int: ...

    def deposit_weeks(self, window_days: int) -> int: ...

    def has_recent_default(self, months: int) -> bool: ...

    def in_detention(self) -> bool: ...

    def completed_savings_cycles(self) -> int: ...

    def tenure_days(self) -> int: ...

    def kyc_level(self) -> int: ...

    def standing_reasons(self, amount: Money) -> List[str]: ...

    def sponsor(self, sponsor_id: str, currency: Currency) -> Optional[SponsorFacts]: ...

    def group(self, group_id: uuid.UUID, currency: Currency) -> Optional[GroupFacts]: ...


class ProductRules(ABC):
    """
    Constant tables and eligibility predicate of one credit product.

    Subclasses set the class attributes and implement the fee and rate
    tables; the lifecycle engine only talks to this interface.
    """

    product_type: ProductType
    currency: Currency = Currency.USD
    min_amount_cents: int = 0
    max_amount_cents: int = 0
    requires_documents: bool = True
    caution_bps: int = 3000
    late_interest_bps: int = 200
    settlement_grace_days: int = 3
    renewable: bool = False
    default_lookback_months: int = 6

    # ----- eligibility -----

    def check_eligibility(self, facts: CustomerFacts, amount: Money, args: ProductArgs) -> List[str]:
        """Every unmet condition; an empty list means eligible"""
        if amount.currency != self.currency:
            return [f"{self.product_type.value} credits are only granted in {self.currency.value}"]

        reasons = []
        reasons.extend(self.amount_reasons(amount.amount_cents, args))
        reasons.extend(self.product_reasons(facts, amount, args))
        reasons.extend(facts.standing_reasons(amount))
        return reasons

    def amount_reasons(self, amount_cents: int, args: ProductArgs) -> List[str]:
        if amount_cents < self.min_amount_cents or amount_cents > self.max_amount_cents:
            return [
                f"amount must be between {fmt(self.min_amount_cents)} and {fmt(self.max_amount_cents)} "
                f"{self.currency.value}"
            ]
        return []

    @abstractmethod
    def product_reasons(self, facts: CustomerFacts, amount: Money, args: ProductArgs) -> List[str]:
        """Product-specific conditions"""

    # Shared conditions, each product picks its own subset

    def mandatory_savings_reasons(self, facts: CustomerFacts, amount: Money, ratio_bps: int) -> List[str]:
        required = percent_of(amount.amount_cents, ratio_bps)
        balance = facts.mandatory_savings_available(amount.currency)
        if balance.amount_cents < required:
            return [
                f"mandatory savings balance insufficient: required {fmt(required)}, "
                f"current {fmt(balance.amount_cents)}"
            ]
        return []

    def recent_default_reasons(self, facts: CustomerFacts) -> List[str]:
        if facts.has_recent_default(self.default_lookback_months):
            return [f"payment default in the last {self.default_lookback_months} months"]
        return []

    def detention_reasons(self, facts: CustomerFacts) -> List[str]:
        if facts.in_detention():
            return ["customer is under virtual detention"]
        return []

    # ----- pricing -----

    @abstractmethod
    def processing_fee(self, amount_cents: int) -> int:
        """Processing fee in minor units"""

    @abstractmethod
    def interest_rate_bps(self, amount_cents: int, duration_months: Optional[int]) -> int:
        """Flat interest rate over the whole credit, in basis points"""

    def duration(self, args: ProductArgs) -> Tuple[Optional[int], Optional[int]]:
        """(months, days) of the credit"""
        return args.duration_months, None

    def quote(self, amount: Money, args: ProductArgs) -> CreditTerms:
        months, days = self.duration(args)
        fee = self.processing_fee(amount.amount_cents)
        rate = self.interest_rate_bps(amount.amount_cents, months)
        interest = percent_of(amount.amount_cents, rate)
        installment = None
        if months:
            # Half-up integer division of the total repayable over the term
            installment = Money((2 * (amount.amount_cents + interest) + months) // (2 * months), amount.currency)
        return CreditTerms(
            amount=amount,
            processing_fee=Money(fee, amount.currency),
            interest_rate_bps=rate,
            total_interest=Money(interest, amount.currency),
            caution_bps=self.caution_bps,
            caution_amount=amount.percent(self.caution_bps),
            duration_months=months,
            duration_days=days,
            installment=installment,
        )

    def initial_status(self) -> CreditStatus:
        return CreditStatus.DOCUMENTS_PENDING if self.requires_documents else CreditStatus.CAUTION_PENDING

    def maturity_date(self, disbursed_on: date, terms: CreditTerms) -> date:
        return disbursed_on + relativedelta(months=terms.duration_months or 0)
