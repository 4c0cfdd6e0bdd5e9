"""Seasonal agricultural loan - fixed CDF amounts over one growing season"""

from typing import Dict, List, Optional

from microcredit_engine.domain.exceptions import InvalidAmountError
from microcredit_engine.domain.models import Currency, Money, ProductArgs, ProductType
from microcredit_engine.domain.products.base import CustomerFacts, ProductRules, fmt

# Amount -> processing fee, both in centimes
FEES: Dict[int, int] = {
    5_000_000: 500_000,
    10_000_000: 800_000,
    15_000_000: 1_000_000,
    20_000_000: 1_200_000,
}

DURATION_MONTHS = 3
INTEREST_BPS = 300
MANDATORY_SAVINGS_BPS = 3000
REQUIRED_SAVINGS_CYCLES = 5
MIN_TENURE_DAYS = 90


class SeasonalRules(ProductRules):
    product_type = ProductType.SEASONAL
    currency = Currency.CDF
    min_amount_cents = min(FEES)
    max_amount_cents = max(FEES)
    requires_documents = True
    caution_bps = 3000
    late_interest_bps = 200
    settlement_grace_days = 3

    def amount_reasons(self, amount_cents: int, args: ProductArgs) -> List[str]:
        if amount_cents not in FEES:
            allowed = ", ".join(fmt(amount) for amount in sorted(FEES))
            return [f"amount must be one of {allowed} CDF"]
        return []

    def product_reasons(self, facts: CustomerFacts, amount: Money, args: ProductArgs) -> List[str]:
        reasons = self.mandatory_savings_reasons(facts, amount, MANDATORY_SAVINGS_BPS)

        cycles = facts.completed_savings_cycles()
        if cycles < REQUIRED_SAVINGS_CYCLES:
            reasons.append(
                f"{REQUIRED_SAVINGS_CYCLES} completed programmed-savings cycles required (current: {cycles})"
            )

        tenure = facts.tenure_days()
        if tenure < MIN_TENURE_DAYS:
            reasons.append(f"account must be at least {MIN_TENURE_DAYS} days old (current: {tenure})")

        reasons.extend(self.detention_reasons(facts))
        return reasons

    def processing_fee(self, amount_cents: int) -> int:
        if amount_cents not in FEES:
            raise InvalidAmountError(f"No seasonal credit for amount {fmt(amount_cents)} CDF")
        return FEES[amount_cents]

    def interest_rate_bps(self, amount_cents: int, duration_months: Optional[int]) -> int:
        return INTEREST_BPS

    def duration(self, args: ProductArgs):
        return DURATION_MONTHS, None
