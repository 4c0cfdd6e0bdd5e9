"""Closed dispatch table from product kind to its rules"""

from typing import Dict

from microcredit_engine.config import settings
from microcredit_engine.domain.models import ProductType
from microcredit_engine.domain.products.base import ProductRules
from microcredit_engine.domain.products.group_savings import GroupSavingsRules
from microcredit_engine.domain.products.individual_term import IndividualTermRules
from microcredit_engine.domain.products.seasonal import SeasonalRules
from microcredit_engine.domain.products.short_overdraft import ShortOverdraftRules
from microcredit_engine.domain.products.sponsor_guaranteed import SponsorGuaranteedRules

PRODUCTS: Dict[ProductType, ProductRules] = {
    ProductType.SHORT_OVERDRAFT: ShortOverdraftRules(),
    ProductType.INDIVIDUAL_TERM: IndividualTermRules(),
    ProductType.SPONSOR_GUARANTEED: SponsorGuaranteedRules(settings.max_active_sponsorships),
    ProductType.SEASONAL: SeasonalRules(),
    ProductType.GROUP_SAVINGS: GroupSavingsRules(),
}


def get_rules(product: ProductType | str) -> ProductRules:
    return PRODUCTS[ProductType(product)]
