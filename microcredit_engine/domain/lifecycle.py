"""Credit application state machine"""

from typing import Dict, FrozenSet

from microcredit_engine.domain.exceptions import InvalidStateTransitionError
from microcredit_engine.domain.models import CreditStatus as S

TRANSITIONS: Dict[S, FrozenSet[S]] = {
    S.ELIGIBILITY_CHECK: frozenset({S.DOCUMENTS_PENDING, S.CAUTION_PENDING, S.CANCELLED}),
    S.DOCUMENTS_PENDING: frozenset({S.DOCUMENTS_SUBMITTED, S.CAUTION_PENDING, S.CANCELLED}),
    S.DOCUMENTS_SUBMITTED: frozenset({S.ADMIN_REVIEW, S.CAUTION_PENDING, S.CANCELLED}),
    S.ADMIN_REVIEW: frozenset({S.CAUTION_PENDING, S.CANCELLED}),
    S.CAUTION_PENDING: frozenset({S.APPROVED, S.CANCELLED}),
    S.APPROVED: frozenset({S.DISBURSED, S.CANCELLED}),
    S.DISBURSED: frozenset({S.ACTIVE, S.COMPLETED, S.DEFAULTED, S.VIRTUAL_PRISON, S.CANCELLED}),
    S.ACTIVE: frozenset({S.COMPLETED, S.DEFAULTED, S.VIRTUAL_PRISON, S.CANCELLED}),
    S.VIRTUAL_PRISON: frozenset({S.COMPLETED, S.LEGAL_PURSUIT, S.DEFAULTED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.DEFAULTED: frozenset(),
    S.LEGAL_PURSUIT: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Statuses where the settlement cascade and repayments apply
OUTSTANDING_STATUSES = frozenset({S.DISBURSED, S.ACTIVE})
REPAYABLE_STATUSES = frozenset({S.DISBURSED, S.ACTIVE, S.VIRTUAL_PRISON})
REVIEWABLE_STATUSES = frozenset({S.DOCUMENTS_PENDING, S.DOCUMENTS_SUBMITTED, S.ADMIN_REVIEW})


def can_transition(current: S, target: S) -> bool:
    return target in TRANSITIONS[current]


def assert_transition(current: S | str, target: S) -> None:
    """Raise before any mutation when the transition is not allowed"""
    current = S(current)
    if not can_transition(current, target):
        raise InvalidStateTransitionError(current.value, target.value)


def is_terminal(status: S | str) -> bool:
    return S(status) in TERMINAL_STATUSES
