"""SQLAlchemy ORM models, one table per ledger and credit entity"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Customer(Base):
    """Bank customer as seen by the credit engine"""

    __tablename__ = "customer"

    id = Column(Text, primary_key=True)
    category = Column(Text, nullable=False, default="STANDARD")
    kyc_level = Column(Integer, nullable=False, default=0)
    joined_on = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    accounts = relationship("Account", back_populates="customer")


class Account(Base):
    """Purpose-typed customer sub-account"""

    __tablename__ = "account"
    __table_args__ = (UniqueConstraint("customer_id", "account_type", name="uq_account_customer_type"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Text, ForeignKey("customer.id"), nullable=False, index=True)
    account_type = Column(Text, nullable=False)
    account_number = Column(Text, nullable=False, unique=True)
    status = Column(Text, nullable=False, default="ACTIVE")
    opened_on = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    customer = relationship("Customer", back_populates="accounts")
    balances = relationship("AccountBalance", back_populates="account", cascade="all, delete-orphan")


class AccountBalance(Base):
    """Balance of one account in one currency; held funds stay on the balance but are not available"""

    __tablename__ = "account_balance"
    __table_args__ = (
        UniqueConstraint("account_id", "currency", name="uq_balance_account_currency"),
        CheckConstraint("balance_cents >= 0", name="ck_balance_non_negative"),
        CheckConstraint("held_cents >= 0", name="ck_held_non_negative"),
        CheckConstraint("held_cents <= balance_cents", name="ck_held_within_balance"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("account.id", ondelete="CASCADE"), nullable=False)
    currency = Column(Text, nullable=False)
    balance_cents = Column(BigInteger, nullable=False, default=0)
    held_cents = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    account = relationship("Account", back_populates="balances")


class LedgerEntry(Base):
    """Append-only journal of balance movements"""

    __tablename__ = "ledger_entry"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("account.id"), nullable=False, index=True)
    currency = Column(Text, nullable=False)
    kind = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    balance_after_cents = Column(BigInteger, nullable=False)
    held_after_cents = Column(BigInteger, nullable=False, default=0)
    business_date = Column(Date, nullable=False, index=True)
    credit_id = Column(UUID(as_uuid=True), ForeignKey("credit_application.id"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class EligibilityProfile(Base):
    """Standing, score and repayment statistics of a customer"""

    __tablename__ = "eligibility_profile"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Text, ForeignKey("customer.id"), nullable=False, unique=True)
    standing = Column(Text, nullable=False, default="NEUTRAL")
    score = Column(Integer, nullable=False, default=50)
    total_loans = Column(Integer, nullable=False, default=0)
    completed_loans = Column(Integer, nullable=False, default=0)
    defaulted_loans = Column(Integer, nullable=False, default=0)
    late_loans = Column(Integer, nullable=False, default=0)
    on_time_rate = Column(Float, nullable=False, default=0.0)
    blacklist_reason = Column(Text, nullable=True)
    blacklisted_by = Column(Text, nullable=True)
    blacklisted_at = Column(DateTime(timezone=True), nullable=True)
    whitelist_reason = Column(Text, nullable=True)
    whitelisted_by = Column(Text, nullable=True)
    whitelisted_at = Column(DateTime(timezone=True), nullable=True)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    credit_lines = relationship("CreditLine", back_populates="profile", cascade="all, delete-orphan")


class CreditLine(Base):
    """Credit limit and usage of a profile in one currency"""

    __tablename__ = "credit_line"
    __table_args__ = (
        UniqueConstraint("profile_id", "currency", name="uq_credit_line_currency"),
        CheckConstraint("used_cents >= 0", name="ck_credit_line_used_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    profile_id = Column(UUID(as_uuid=True), ForeignKey("eligibility_profile.id", ondelete="CASCADE"), nullable=False)
    currency = Column(Text, nullable=False)
    limit_cents = Column(BigInteger, nullable=False, default=0)
    used_cents = Column(BigInteger, nullable=False, default=0)
    # Limit granted by a whitelisting, kept over automatic re-tiering
    limit_override_cents = Column(BigInteger, nullable=True)

    profile = relationship("EligibilityProfile", back_populates="credit_lines")


class CreditApplication(Base):
    """Credit application and its running totals, the central aggregate"""

    __tablename__ = "credit_application"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Text, ForeignKey("customer.id"), nullable=False, index=True)
    product_type = Column(Text, nullable=False, index=True)
    currency = Column(Text, nullable=False)
    status = Column(Text, nullable=False, index=True)

    requested_cents = Column(BigInteger, nullable=False)
    approved_cents = Column(BigInteger, nullable=False)
    disbursed_cents = Column(BigInteger, nullable=False, default=0)
    processing_fee_cents = Column(BigInteger, nullable=False)
    interest_rate_bps = Column(Integer, nullable=False)
    total_interest_cents = Column(BigInteger, nullable=False)
    caution_bps = Column(Integer, nullable=False)
    caution_cents = Column(BigInteger, nullable=False)
    duration_months = Column(Integer, nullable=True)
    duration_days = Column(Integer, nullable=True)
    installment_cents = Column(BigInteger, nullable=True)

    total_paid_cents = Column(BigInteger, nullable=False, default=0)
    late_interest_cents = Column(BigInteger, nullable=False, default=0)
    remaining_cents = Column(BigInteger, nullable=False, default=0)

    mandatory_savings_account_id = Column(UUID(as_uuid=True), ForeignKey("account.id"), nullable=True)
    caution_account_id = Column(UUID(as_uuid=True), ForeignKey("account.id"), nullable=True)
    credit_account_id = Column(UUID(as_uuid=True), ForeignKey("account.id"), nullable=True)

    sponsor_id = Column(Text, ForeignKey("customer.id"), nullable=True)
    group_id = Column(UUID(as_uuid=True), ForeignKey("savings_group.id"), nullable=True)
    renewed_from_id = Column(UUID(as_uuid=True), ForeignKey("credit_application.id"), nullable=True)
    is_renewable = Column(Boolean, nullable=False, default=False)
    # Credit-line usage reserved at disbursement and not yet given back
    usage_reserved = Column(Boolean, nullable=False, default=False)

    purpose = Column(Text, nullable=True)
    documents = Column(JSON, nullable=True)
    reviewer_id = Column(Text, nullable=True)
    review_comments = Column(Text, nullable=True)
    status_reason = Column(Text, nullable=True)

    requested_on = Column(Date, nullable=False)
    documents_submitted_on = Column(Date, nullable=True)
    reviewed_on = Column(Date, nullable=True)
    approved_on = Column(Date, nullable=True)
    disbursed_on = Column(Date, nullable=True)
    maturity_date = Column(Date, nullable=True, index=True)
    settled_on = Column(Date, nullable=True)
    closed_on = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    repayments = relationship("Repayment", back_populates="credit", order_by="Repayment.created_at")


class Repayment(Base):
    """Append-only payment event against a credit"""

    __tablename__ = "repayment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    credit_id = Column(UUID(as_uuid=True), ForeignKey("credit_application.id"), nullable=False, index=True)
    customer_id = Column(Text, nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    currency = Column(Text, nullable=False)
    paid_on = Column(Date, nullable=False)
    status = Column(Text, nullable=False)
    is_on_time = Column(Boolean, nullable=False)
    days_late = Column(Integer, nullable=False, default=0)
    auto_debited = Column(Boolean, nullable=False, default=False)
    from_mandatory_savings = Column(Boolean, nullable=False, default=False)
    from_caution = Column(Boolean, nullable=False, default=False)
    paid_by_sponsor = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    credit = relationship("CreditApplication", back_populates="repayments")


class VirtualDetention(Base):
    """Temporary restriction opened on an uncovered delinquency"""

    __tablename__ = "virtual_detention"
    __table_args__ = (
        Index(
            "uq_active_detention",
            "customer_id",
            "credit_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Text, nullable=False, index=True)
    credit_id = Column(UUID(as_uuid=True), ForeignKey("credit_application.id"), nullable=False)
    currency = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    principal_cents = Column(BigInteger, nullable=False)
    interest_cents = Column(BigInteger, nullable=False, default=0)
    penalty_cents = Column(BigInteger, nullable=False, default=0)
    release_conditions = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    opened_on = Column(Date, nullable=False)
    released_on = Column(Date, nullable=True)
    released_by = Column(Text, nullable=True)
    release_reason = Column(Text, nullable=True)


class SponsorGuarantee(Base):
    """Collateral locked by a guarantor against a sponsored credit"""

    __tablename__ = "sponsor_guarantee"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sponsor_id = Column(Text, ForeignKey("customer.id"), nullable=False, index=True)
    beneficiary_id = Column(Text, ForeignKey("customer.id"), nullable=False)
    credit_id = Column(UUID(as_uuid=True), ForeignKey("credit_application.id"), nullable=False, unique=True)
    currency = Column(Text, nullable=False)
    guarantee_bps = Column(Integer, nullable=False)
    locked_cents = Column(BigInteger, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    liability_triggered = Column(Boolean, nullable=False, default=False)
    sponsor_paid_cents = Column(BigInteger, nullable=False, default=0)
    locked_on = Column(Date, nullable=False)
    released_on = Column(Date, nullable=True)


class RenewalRecord(Base):
    """One renewal attempt of a renewable credit, renewed or blocked"""

    __tablename__ = "renewal_record"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    credit_id = Column(UUID(as_uuid=True), ForeignKey("credit_application.id"), nullable=False, unique=True)
    new_credit_id = Column(UUID(as_uuid=True), ForeignKey("credit_application.id"), nullable=True)
    customer_id = Column(Text, nullable=False, index=True)
    renewed = Column(Boolean, nullable=False)
    reasons = Column(JSON, nullable=True)
    business_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SavingsCycle(Base):
    """Programmed-savings cycle"""

    __tablename__ = "savings_cycle"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Text, ForeignKey("customer.id"), nullable=False, index=True)
    currency = Column(Text, nullable=False)
    target_cents = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="ACTIVE")
    started_on = Column(Date, nullable=False)
    completed_on = Column(Date, nullable=True)


class SavingsGroup(Base):
    __tablename__ = "savings_group"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Text, nullable=False)
    created_on = Column(Date, nullable=False)

    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")


class GroupMember(Base):
    __tablename__ = "group_member"
    __table_args__ = (UniqueConstraint("group_id", "customer_id", name="uq_group_member"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(UUID(as_uuid=True), ForeignKey("savings_group.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(Text, ForeignKey("customer.id"), nullable=False, index=True)
    joined_on = Column(Date, nullable=False)

    group = relationship("SavingsGroup", back_populates="members")


class GroupContribution(Base):
    __tablename__ = "group_contribution"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(UUID(as_uuid=True), ForeignKey("savings_group.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(Text, ForeignKey("customer.id"), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    currency = Column(Text, nullable=False)
    contributed_on = Column(Date, nullable=False)


class OutboundWebhook(Base):
    """Notification delivery queue with retry tracking"""

    __tablename__ = "outbound_webhook"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_type = Column(Text, nullable=False)
    customer_id = Column(Text, nullable=True, index=True)
    payload = Column(JSON, nullable=False)
    target_url = Column(Text, nullable=False)
    dedupe_key = Column(Text, nullable=True, unique=True)
    status = Column(Text, nullable=False, default="pending")
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    """Administrative and lifecycle audit trail"""

    __tablename__ = "audit_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    action = Column(Text, nullable=False, index=True)
    actor_id = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=False, index=True)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
