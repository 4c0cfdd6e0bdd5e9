"""Credit scoring engine - core business logic for creditworthiness and standing"""

import math
from typing import List, Sequence, Tuple

from microcredit_engine.domain.models import RepaymentHistory, Standing

BASE_SCORE = 50
NEW_CUSTOMER_SCORE = 50


def calculate_score(history: RepaymentHistory) -> int:
    """
    Calculate credit score from 0 (highest risk) to 100 (lowest risk).

    Scoring components:
    - Base: 50
    - Up to +30: share of credits that were completed
    - Up to +20: share of completed credits repaid on or before maturity
    - -10 per credit repaid late, capped at -30
    - -50 per defaulted credit

    The score is a pure function of the history: same input, same score.
    """
    if history.total_loans == 0:
        return NEW_CUSTOMER_SCORE

    score = float(BASE_SCORE)

    # Completion bonus (+30 max)
    score += min(30.0, history.completed_loans / history.total_loans * 30)

    # On-time bonus (+20 max), only meaningful once something was completed
    if history.completed_loans > 0:
        score += history.on_time_loans / history.completed_loans * 20

    # Penalties
    score -= min(30, history.late_loans * 10)
    score -= history.defaulted_loans * 50

    # Round half up, then clamp to [0, 100]
    return max(0, min(100, math.floor(score + 0.5)))


def on_time_rate(history: RepaymentHistory) -> float:
    """Percentage of completed credits repaid on time"""
    if history.completed_loans == 0:
        return 0.0
    return round(history.on_time_loans / history.completed_loans * 100, 2)


def determine_credit_limit(score: int, tiers: Sequence[Tuple[int, int]]) -> int:
    """
    Map score to a credit limit in minor units.

    Tiers are (minimum score, limit) pairs, highest first. Default USD policy:
    - 80+: 5000
    - 60+: 3000
    - 40+: 1500
    - else: 1000
    """
    for min_score, limit in sorted(tiers, key=lambda tier: tier[0], reverse=True):
        if score >= min_score:
            return limit
    return 0


def standing_reasons(
    standing: Standing,
    score: int,
    requested_cents: int,
    available_cents: int,
    min_score: int,
    blacklist_reason: str | None = None,
) -> List[str]:
    """
    Every unmet global condition, in evaluation order.

    Blacklisting fails closed: nothing else is evaluated and no amount or
    score can make the customer eligible.
    """
    if standing == Standing.BLACKLISTED:
        return [f"customer is blacklisted: {blacklist_reason}" if blacklist_reason else "customer is blacklisted"]

    reasons = []
    if requested_cents > available_cents:
        reasons.append(
            f"amount {requested_cents / 100:.2f} exceeds available credit {available_cents / 100:.2f}"
        )
    # Whitelisted customers bypass the score gate
    if standing != Standing.WHITELISTED and score < min_score:
        reasons.append(f"score below minimum {min_score}")
    return reasons
