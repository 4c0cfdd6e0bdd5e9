"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class NotFoundError(DomainException):
    """Requested entity does not exist"""

    pass


class InvalidStateTransitionError(DomainException):
    """Credit status does not allow the requested operation"""

    def __init__(self, current: str, target: str, detail: str | None = None):
        self.current = current
        self.target = target
        message = f"Cannot move credit from {current} to {target}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InsufficientBalanceError(DomainException):
    """Debit or hold would take an account below zero available balance"""

    pass


class InvalidAmountError(DomainException):
    """Amount falls outside every band of a product table"""

    pass


class CurrencyMismatchError(DomainException):
    """Two amounts in different currencies were combined"""

    pass


class OverpaymentError(DomainException):
    """Repayment exceeds the remaining balance of the credit"""

    pass


class SponsorCapacityError(DomainException):
    """Sponsor cannot take on another guarantee"""

    pass


class AccountInactiveError(DomainException):
    """Ledger movement attempted on a deactivated account"""

    pass


class GroupMembershipError(DomainException):
    """Savings group size or membership rule violated"""

    pass
