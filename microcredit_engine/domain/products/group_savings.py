"""Group savings loan - members borrow against the group's pooled contributions"""

from typing import List, Optional

from microcredit_engine.domain.models import Currency, Money, ProductArgs, ProductType, percent_of
from microcredit_engine.domain.products.base import CustomerFacts, ProductRules, fmt

POOLED_CEILING_BPS = 8000
FEE_BPS = 150
INTEREST_BPS = 200
DURATION_MONTHS = 6
MIN_MEMBERS = 5
MAX_MEMBERS = 10


class GroupSavingsRules(ProductRules):
    product_type = ProductType.GROUP_SAVINGS
    currency = Currency.USD
    min_amount_cents = 1
    requires_documents = False
    caution_bps = 0
    late_interest_bps = 200
    settlement_grace_days = 3

    def amount_reasons(self, amount_cents: int, args: ProductArgs) -> List[str]:
        # The ceiling depends on the group, checked in product_reasons
        if amount_cents < self.min_amount_cents:
            return ["amount must be positive"]
        return []

    def product_reasons(self, facts: CustomerFacts, amount: Money, args: ProductArgs) -> List[str]:
        reasons = []
        group = facts.group(args.group_id, amount.currency) if args.group_id else None
        if group is None:
            reasons.append("a savings group is required")
        elif not group.is_member:
            reasons.append("customer is not a member of this group")
        elif not group.is_active:
            reasons.append("savings group is not active")
        else:
            ceiling = percent_of(group.pooled_savings.amount_cents, POOLED_CEILING_BPS)
            if amount.amount_cents > ceiling:
                reasons.append(
                    f"amount exceeds 80% of pooled group savings (maximum {fmt(ceiling)})"
                )

        reasons.extend(self.detention_reasons(facts))
        return reasons

    def processing_fee(self, amount_cents: int) -> int:
        return percent_of(amount_cents, FEE_BPS)

    def interest_rate_bps(self, amount_cents: int, duration_months: Optional[int]) -> int:
        return INTEREST_BPS

    def duration(self, args: ProductArgs):
        return DURATION_MONTHS, None
