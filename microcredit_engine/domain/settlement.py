"""Settlement cascade planning - which accounts cover an overdue balance, and how much"""

from datetime import date, timedelta
from typing import List, Sequence, Tuple

from microcredit_engine.domain.models import AccountType, CascadeDebit, percent_of

# Fixed recourse order: mandatory savings first, then caution
CASCADE_ORDER: Tuple[AccountType, ...] = (AccountType.MANDATORY_SAVINGS, AccountType.CAUTION)


def plan_cascade(amount_due_cents: int, available: Sequence[Tuple[AccountType, int]]) -> List[CascadeDebit]:
    """
    Plan debits across source accounts in the given order.

    Never takes more than an account's available balance, and never more
    than the outstanding amount in total. Accounts contributing nothing are
    left out of the plan.

    Example:
        due 100, mandatory savings 30, caution 20
        → [MANDATORY_SAVINGS 30, CAUTION 20], shortfall 50
    """
    debits = []
    outstanding = max(0, amount_due_cents)
    for account_type, balance_cents in available:
        if outstanding == 0:
            break
        take = min(max(0, balance_cents), outstanding)
        if take > 0:
            debits.append(CascadeDebit(account_type=account_type, amount_cents=take))
            outstanding -= take
    return debits


def late_interest(remaining_cents: int, late_interest_bps: int) -> int:
    """Late-interest surcharge on the balance left after the cascade"""
    if remaining_cents <= 0:
        return 0
    return percent_of(remaining_cents, late_interest_bps)


def is_settlement_due(maturity_date: date | None, grace_days: int, business_date: date) -> bool:
    """A credit is due for settlement once maturity plus grace is strictly in the past"""
    if maturity_date is None:
        return False
    return maturity_date + timedelta(days=grace_days) < business_date


def days_late(maturity_date: date | None, paid_on: date) -> int:
    if maturity_date is None:
        return 0
    return max(0, (paid_on - maturity_date).days)
