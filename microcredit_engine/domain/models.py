"""Domain models - pure Python dataclasses and enums representing business entities"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from microcredit_engine.domain.exceptions import CurrencyMismatchError


class Currency(str, enum.Enum):
    USD = "USD"
    CDF = "CDF"


class AccountType(str, enum.Enum):
    """Purpose of a customer sub-account"""

    STANDARD = "STANDARD"
    MANDATORY_SAVINGS = "MANDATORY_SAVINGS"
    CAUTION = "CAUTION"
    CREDIT = "CREDIT"
    PROGRAMMED_SAVINGS = "PROGRAMMED_SAVINGS"
    FINES = "FINES"


class AccountStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class EntryKind(str, enum.Enum):
    """Ledger journal entry kinds"""

    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    DISBURSEMENT = "DISBURSEMENT"
    AUTO_DEBIT = "AUTO_DEBIT"
    REPAYMENT = "REPAYMENT"
    COLLECTION = "COLLECTION"
    FINE = "FINE"
    SPONSOR_DEBIT = "SPONSOR_DEBIT"
    REVERSAL = "REVERSAL"
    HOLD = "HOLD"
    RELEASE = "RELEASE"


class Standing(str, enum.Enum):
    BLACKLISTED = "BLACKLISTED"
    NEUTRAL = "NEUTRAL"
    WHITELISTED = "WHITELISTED"


class CustomerCategory(str, enum.Enum):
    STANDARD = "STANDARD"
    GOLD = "GOLD"


class ProductType(str, enum.Enum):
    SHORT_OVERDRAFT = "SHORT_OVERDRAFT"
    INDIVIDUAL_TERM = "INDIVIDUAL_TERM"
    SPONSOR_GUARANTEED = "SPONSOR_GUARANTEED"
    SEASONAL = "SEASONAL"
    GROUP_SAVINGS = "GROUP_SAVINGS"


class CreditStatus(str, enum.Enum):
    ELIGIBILITY_CHECK = "ELIGIBILITY_CHECK"
    DOCUMENTS_PENDING = "DOCUMENTS_PENDING"
    DOCUMENTS_SUBMITTED = "DOCUMENTS_SUBMITTED"
    ADMIN_REVIEW = "ADMIN_REVIEW"
    CAUTION_PENDING = "CAUTION_PENDING"
    APPROVED = "APPROVED"
    DISBURSED = "DISBURSED"
    ACTIVE = "ACTIVE"
    VIRTUAL_PRISON = "VIRTUAL_PRISON"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"
    LEGAL_PURSUIT = "LEGAL_PURSUIT"
    CANCELLED = "CANCELLED"


class RepaymentStatus(str, enum.Enum):
    ON_TIME = "ON_TIME"
    LATE = "LATE"


class SavingsCycleStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    BROKEN = "BROKEN"


def percent_of(amount_cents: int, bps: int) -> int:
    """Apply a basis-point rate to an amount, rounding half up to the minor unit"""
    value = Decimal(amount_cents) * Decimal(bps) / Decimal(10_000)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Money:
    """Amount in minor units paired with its currency. Never converted implicitly."""

    amount_cents: int
    currency: Currency

    def _check(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(f"Cannot combine {self.currency.value} with {other.currency.value}")

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount_cents + other.amount_cents, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount_cents - other.amount_cents, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount_cents < other.amount_cents

    def __le__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount_cents <= other.amount_cents

    def percent(self, bps: int) -> "Money":
        return Money(percent_of(self.amount_cents, bps), self.currency)

    def is_zero(self) -> bool:
        return self.amount_cents == 0

    @classmethod
    def zero(cls, currency: Currency) -> "Money":
        return cls(0, currency)


@dataclass
class ProductArgs:
    """Product-specific request arguments"""

    duration_months: Optional[int] = None
    sponsor_id: Optional[str] = None
    group_id: Optional[uuid.UUID] = None
    purpose: Optional[str] = None


@dataclass
class CreditTerms:
    """Pricing of a credit request, computed from a product's tables"""

    amount: Money
    processing_fee: Money
    interest_rate_bps: int
    total_interest: Money
    caution_bps: int
    caution_amount: Money
    duration_months: Optional[int]
    duration_days: Optional[int]
    installment: Optional[Money]

    @property
    def net_amount(self) -> Money:
        return self.amount - self.processing_fee

    @property
    def total_repayable(self) -> Money:
        return self.amount + self.total_interest


@dataclass
class EligibilityResult:
    """Outcome of the global standing check"""

    eligible: bool
    standing: Standing
    score: int
    limit: Money
    used: Money
    available: Money
    reason: Optional[str] = None


@dataclass
class ProductEligibility:
    """Outcome of a product eligibility check with every unmet condition"""

    eligible: bool
    reasons: List[str] = field(default_factory=list)


@dataclass
class RepaymentHistory:
    """Inputs of the credit score, derived from a customer's credits"""

    total_loans: int = 0
    completed_loans: int = 0
    on_time_loans: int = 0
    late_loans: int = 0
    defaulted_loans: int = 0


@dataclass
class CascadeDebit:
    """Planned debit of one source account during settlement"""

    account_type: AccountType
    amount_cents: int


@dataclass
class RepaymentSummary:
    credit_id: uuid.UUID
    paid: Money
    total_paid: Money
    remaining: Money
    status: CreditStatus
    on_time: bool
    days_late: int


@dataclass
class SettlementOutcome:
    """Result of settling one overdue credit"""

    credit_id: uuid.UUID
    outcome: str  # covered | shortfall | sponsor_covered | sponsor_shortfall | skipped
    collected_cents: int = 0
    sponsor_paid_cents: int = 0
    late_interest_cents: int = 0
    remaining_cents: int = 0


@dataclass
class PassReport:
    """Summary of a scheduled pass"""

    name: str
    business_date: date
    examined: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    details: List[str] = field(default_factory=list)
