"""Short daily overdraft - small USD advance repaid the next day and renewed automatically"""

from datetime import date, timedelta
from typing import List, Optional, Tuple

from microcredit_engine.domain.models import CreditTerms, Currency, Money, ProductArgs, ProductType
from microcredit_engine.domain.products.base import Band, CustomerFacts, ProductRules, lookup_band

FEE_BANDS: Tuple[Band, ...] = (
    (1_000, 2_000, 200),
    (2_001, 5_000, 400),
    (5_001, 10_000, 800),
)

MANDATORY_SAVINGS_BPS = 5000
REQUIRED_DEPOSIT_DAYS = 26
DEPOSIT_WINDOW_DAYS = 35


class ShortOverdraftRules(ProductRules):
    product_type = ProductType.SHORT_OVERDRAFT
    currency = Currency.USD
    min_amount_cents = 1_000
    max_amount_cents = 10_000
    requires_documents = True
    caution_bps = 3000
    late_interest_bps = 500
    settlement_grace_days = 0
    renewable = True

    def product_reasons(self, facts: CustomerFacts, amount: Money, args: ProductArgs) -> List[str]:
        reasons = self.mandatory_savings_reasons(facts, amount, MANDATORY_SAVINGS_BPS)

        deposit_days = facts.deposit_days(DEPOSIT_WINDOW_DAYS)
        if deposit_days < REQUIRED_DEPOSIT_DAYS:
            reasons.append(
                f"{REQUIRED_DEPOSIT_DAYS} deposit days required in the last {DEPOSIT_WINDOW_DAYS} days "
                f"(current: {deposit_days})"
            )

        reasons.extend(self.recent_default_reasons(facts))
        reasons.extend(self.detention_reasons(facts))
        return reasons

    def processing_fee(self, amount_cents: int) -> int:
        return lookup_band(FEE_BANDS, amount_cents, "overdraft fee")

    def interest_rate_bps(self, amount_cents: int, duration_months: Optional[int]) -> int:
        return 0

    def duration(self, args: ProductArgs) -> Tuple[Optional[int], Optional[int]]:
        return None, 1

    def quote(self, amount: Money, args: ProductArgs) -> CreditTerms:
        terms = super().quote(amount, args)
        # Repaid in one go on the next day
        terms.installment = terms.total_repayable
        return terms

    def maturity_date(self, disbursed_on: date, terms: CreditTerms) -> date:
        return disbursed_on + timedelta(days=1)
