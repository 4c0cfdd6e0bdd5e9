"""Individual term loan - 200 to 1500 USD over 6, 9 or 12 months"""

from typing import Dict, List, Optional, Tuple

from microcredit_engine.domain.exceptions import InvalidAmountError
from microcredit_engine.domain.models import CreditTerms, Currency, Money, ProductArgs, ProductType
from microcredit_engine.domain.products.base import Band, CustomerFacts, ProductRules, lookup_band

# Flat processing fee per 100 USD band
FEE_BANDS: Tuple[Band, ...] = (
    (20_000, 30_000, 2_000),
    (30_001, 40_000, 2_500),
    (40_001, 50_000, 3_000),
    (50_001, 60_000, 3_500),
    (60_001, 70_000, 4_000),
    (70_001, 80_000, 4_500),
    (80_001, 90_000, 5_000),
    (90_001, 100_000, 5_500),
    (100_001, 110_000, 6_000),
    (110_001, 120_000, 6_500),
    (120_001, 130_000, 7_000),
    (130_001, 140_000, 7_500),
    (140_001, 150_000, 8_000),
)

# Rate band index 0: 200-500, index 1: 501-1500
RATE_BANDS: Tuple[Band, ...] = (
    (20_000, 50_000, 0),
    (50_001, 150_000, 1),
)

RATES_BPS: Dict[int, Tuple[int, int]] = {
    6: (500, 450),
    9: (530, 480),
    12: (550, 500),
}

ALLOWED_DURATIONS = tuple(sorted(RATES_BPS))

MANDATORY_SAVINGS_BPS = 3000
REQUIRED_DEPOSIT_WEEKS = 6
DEPOSIT_WINDOW_DAYS = 45


class IndividualTermRules(ProductRules):
    product_type = ProductType.INDIVIDUAL_TERM
    currency = Currency.USD
    min_amount_cents = 20_000
    max_amount_cents = 150_000
    requires_documents = True
    caution_bps = 3000
    late_interest_bps = 200
    settlement_grace_days = 3

    mandatory_savings_bps = MANDATORY_SAVINGS_BPS

    def amount_reasons(self, amount_cents: int, args: ProductArgs) -> List[str]:
        reasons = super().amount_reasons(amount_cents, args)
        if args.duration_months not in RATES_BPS:
            durations = ", ".join(str(months) for months in ALLOWED_DURATIONS)
            reasons.append(f"duration must be one of {durations} months")
        return reasons

    def product_reasons(self, facts: CustomerFacts, amount: Money, args: ProductArgs) -> List[str]:
        reasons = self.mandatory_savings_reasons(facts, amount, self.mandatory_savings_bps)

        weeks = facts.deposit_weeks(DEPOSIT_WINDOW_DAYS)
        if weeks < REQUIRED_DEPOSIT_WEEKS:
            reasons.append(
                f"{REQUIRED_DEPOSIT_WEEKS} deposit weeks required in the last {DEPOSIT_WINDOW_DAYS} days "
                f"(current: {weeks})"
            )

        reasons.extend(self.recent_default_reasons(facts))
        reasons.extend(self.detention_reasons(facts))
        return reasons

    def processing_fee(self, amount_cents: int) -> int:
        return lookup_band(FEE_BANDS, amount_cents, "processing fee")

    def interest_rate_bps(self, amount_cents: int, duration_months: Optional[int]) -> int:
        if duration_months not in RATES_BPS:
            raise InvalidAmountError(f"Unsupported duration: {duration_months} months")
        band = lookup_band(RATE_BANDS, amount_cents, "interest rate")
        return RATES_BPS[duration_months][band]

    def maturity_options(self, amount: Money) -> List[CreditTerms]:
        """Quotes for every allowed duration, shortest first"""
        return [self.quote(amount, ProductArgs(duration_months=months)) for months in ALLOWED_DURATIONS]
