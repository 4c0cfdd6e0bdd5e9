"""Sponsor-guaranteed loan - a GOLD customer locks 40% of the amount as collateral"""

from typing import List, Optional, Tuple

from microcredit_engine.domain.exceptions import InvalidAmountError
from microcredit_engine.domain.models import CustomerCategory, Money, ProductArgs, ProductType, percent_of
from microcredit_engine.domain.products.base import Band, CustomerFacts, fmt, lookup_band
from microcredit_engine.domain.products.individual_term import ALLOWED_DURATIONS, IndividualTermRules

RATE_BANDS: Tuple[Band, ...] = (
    (20_000, 50_000, 150),
    (50_001, 150_000, 100),
)

GUARANTEE_BPS = 4000
MIN_KYC_LEVEL = 1


class SponsorGuaranteedRules(IndividualTermRules):
    """Priced on the individual-term fee table with reduced rates; no document review"""

    product_type = ProductType.SPONSOR_GUARANTEED
    requires_documents = False
    mandatory_savings_bps = 1000
    guarantee_bps = GUARANTEE_BPS

    def __init__(self, max_active_guarantees: int = 3):
        self.max_active_guarantees = max_active_guarantees

    def product_reasons(self, facts: CustomerFacts, amount: Money, args: ProductArgs) -> List[str]:
        reasons = []
        if facts.kyc_level() < MIN_KYC_LEVEL:
            reasons.append(f"KYC level {MIN_KYC_LEVEL} required")

        reasons.extend(self.mandatory_savings_reasons(facts, amount, self.mandatory_savings_bps))
        reasons.extend(self.sponsor_reasons(facts, amount, args))
        reasons.extend(self.recent_default_reasons(facts))
        reasons.extend(self.detention_reasons(facts))
        return reasons

    def sponsor_reasons(self, facts: CustomerFacts, amount: Money, args: ProductArgs) -> List[str]:
        if not args.sponsor_id:
            return ["a GOLD sponsor is required"]
        if args.sponsor_id == facts.customer_id:
            return ["a customer cannot sponsor their own credit"]

        sponsor = facts.sponsor(args.sponsor_id, amount.currency)
        if sponsor is None:
            return [f"sponsor {args.sponsor_id} not found"]

        reasons = []
        if sponsor.category != CustomerCategory.GOLD:
            reasons.append("sponsor must be a GOLD customer")
        if sponsor.active_guarantees >= self.max_active_guarantees:
            reasons.append(
                f"sponsor already guarantees {sponsor.active_guarantees} credits "
                f"(maximum {self.max_active_guarantees})"
            )

        required = self.guarantee_amount(amount).amount_cents
        available = sponsor.available_mandatory_savings.amount_cents
        if available < required:
            reasons.append(
                f"sponsor mandatory savings insufficient: required {fmt(required)}, available {fmt(available)}"
            )
        return reasons

    def guarantee_amount(self, amount: Money) -> Money:
        return Money(percent_of(amount.amount_cents, self.guarantee_bps), amount.currency)

    def interest_rate_bps(self, amount_cents: int, duration_months: Optional[int]) -> int:
        if duration_months not in ALLOWED_DURATIONS:
            raise InvalidAmountError(f"Unsupported duration: {duration_months} months")
        return lookup_band(RATE_BANDS, amount_cents, "interest rate")
