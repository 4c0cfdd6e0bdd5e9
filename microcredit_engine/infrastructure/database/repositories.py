"""Data access layer for ledger and credit entities"""

import uuid
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from microcredit_engine.infrastructure.database.models import (
    Account,
    AccountBalance,
    AuditLog,
    CreditApplication,
    CreditLine,
    Customer,
    EligibilityProfile,
    GroupContribution,
    GroupMember,
    LedgerEntry,
    OutboundWebhook,
    RenewalRecord,
    Repayment,
    SavingsCycle,
    SavingsGroup,
    SponsorGuarantee,
    VirtualDetention,
)


class CustomerRepository:
    """Repository for customers"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, customer_id: str) -> Optional[Customer]:
        return self.db.get(Customer, customer_id)

    def create(self, customer_id: str, joined_on: date, category: str = "STANDARD", kyc_level: int = 0) -> Customer:
        customer = Customer(id=customer_id, joined_on=joined_on, category=category, kyc_level=kyc_level)
        self.db.add(customer)
        self.db.flush()
        return customer

    def list_active_ids(self) -> List[str]:
        """Customers holding at least one ACTIVE account"""
        rows = (
            self.db.query(Customer.id)
            .join(Account, Account.customer_id == Customer.id)
            .filter(Account.status == "ACTIVE")
            .distinct()
            .order_by(Customer.id)
            .all()
        )
        return [row[0] for row in rows]


class AccountRepository:
    """Repository for accounts, their balances and the ledger journal"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, account_id: uuid.UUID) -> Optional[Account]:
        return self.db.get(Account, account_id)

    def get_by_type(self, customer_id: str, account_type: str) -> Optional[Account]:
        return (
            self.db.query(Account)
            .filter(Account.customer_id == customer_id, Account.account_type == account_type)
            .first()
        )

    def list_by_customer(self, customer_id: str) -> List[Account]:
        return self.db.query(Account).filter(Account.customer_id == customer_id).all()

    def create(self, customer_id: str, account_type: str, account_number: str, opened_on: date) -> Account:
        account = Account(
            customer_id=customer_id,
            account_type=account_type,
            account_number=account_number,
            opened_on=opened_on,
        )
        self.db.add(account)
        self.db.flush()
        return account

    def get_balance_row(self, account_id: uuid.UUID, currency: str, for_update: bool = False) -> Optional[AccountBalance]:
        """Fetch a balance row, optionally locking it for the rest of the transaction"""
        query = self.db.query(AccountBalance).filter(
            AccountBalance.account_id == account_id,
            AccountBalance.currency == currency,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create_balance_row(self, account_id: uuid.UUID, currency: str) -> AccountBalance:
        row = AccountBalance(account_id=account_id, currency=currency, balance_cents=0, held_cents=0)
        self.db.add(row)
        self.db.flush()
        return row

    def add_entry(self, **fields) -> LedgerEntry:
        entry = LedgerEntry(**fields)
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_entries(self, account_id: uuid.UUID, kind: Optional[str] = None) -> List[LedgerEntry]:
        query = self.db.query(LedgerEntry).filter(LedgerEntry.account_id == account_id)
        if kind:
            query = query.filter(LedgerEntry.kind == kind)
        return query.order_by(LedgerEntry.created_at, LedgerEntry.id).all()

    def entry_dates(self, account_id: uuid.UUID, kind: str, since: date) -> List[date]:
        """Business dates of entries of one kind on or after `since`"""
        rows = (
            self.db.query(LedgerEntry.business_date)
            .filter(
                LedgerEntry.account_id == account_id,
                LedgerEntry.kind == kind,
                LedgerEntry.business_date >= since,
            )
            .distinct()
            .all()
        )
        return [row[0] for row in rows]


class ProfileRepository:
    """Repository for eligibility profiles and credit lines"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_customer(self, customer_id: str, for_update: bool = False) -> Optional[EligibilityProfile]:
        query = self.db.query(EligibilityProfile).filter(EligibilityProfile.customer_id == customer_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create(self, customer_id: str, score: int) -> EligibilityProfile:
        profile = EligibilityProfile(customer_id=customer_id, standing="NEUTRAL", score=score)
        self.db.add(profile)
        self.db.flush()
        return profile

    def get_line(self, profile_id: uuid.UUID, currency: str, for_update: bool = False) -> Optional[CreditLine]:
        query = self.db.query(CreditLine).filter(CreditLine.profile_id == profile_id, CreditLine.currency == currency)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create_line(self, profile: EligibilityProfile, currency: str, limit_cents: int) -> CreditLine:
        line = CreditLine(currency=currency, limit_cents=limit_cents, used_cents=0)
        profile.credit_lines.append(line)
        self.db.flush()
        return line


class CreditRepository:
    """Repository for credit applications"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> CreditApplication:
        credit = CreditApplication(**fields)
        self.db.add(credit)
        self.db.flush()  # Get ID without committing
        return credit

    def get(self, credit_id: uuid.UUID, for_update: bool = False) -> Optional[CreditApplication]:
        query = self.db.query(CreditApplication).filter(CreditApplication.id == credit_id)
        if for_update:
            # Fresh read under the row lock, never the identity-map copy
            query = query.with_for_update().populate_existing()
        return query.first()

    def list_by_customer(self, customer_id: str, limit: int = 50) -> List[CreditApplication]:
        return (
            self.db.query(CreditApplication)
            .filter(CreditApplication.customer_id == customer_id)
            .order_by(CreditApplication.requested_on.desc(), CreditApplication.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_disbursed_by_customer(self, customer_id: str) -> List[CreditApplication]:
        """Every credit that ever reached disbursement, the basis of the score"""
        return (
            self.db.query(CreditApplication)
            .filter(
                CreditApplication.customer_id == customer_id,
                CreditApplication.disbursed_on.isnot(None),
            )
            .all()
        )

    def count_defaults_since(self, customer_id: str, since: date) -> int:
        return (
            self.db.query(func.count(CreditApplication.id))
            .filter(
                CreditApplication.customer_id == customer_id,
                CreditApplication.status.in_(["DEFAULTED", "LEGAL_PURSUIT"]),
                CreditApplication.closed_on >= since,
            )
            .scalar()
        )

    def list_ids_with_status(
        self,
        statuses: Iterable[str],
        product_types: Optional[Iterable[str]] = None,
        maturity_before: Optional[date] = None,
        maturity_on: Optional[date] = None,
        remaining_zero: Optional[bool] = None,
    ) -> List[uuid.UUID]:
        """Candidate ids for scheduled passes, oldest maturity first"""
        query = self.db.query(CreditApplication.id).filter(CreditApplication.status.in_(list(statuses)))
        if product_types is not None:
            query = query.filter(CreditApplication.product_type.in_(list(product_types)))
        if maturity_before is not None:
            query = query.filter(CreditApplication.maturity_date < maturity_before)
        if maturity_on is not None:
            query = query.filter(CreditApplication.maturity_date == maturity_on)
        if remaining_zero is True:
            query = query.filter(CreditApplication.remaining_cents == 0)
        elif remaining_zero is False:
            query = query.filter(CreditApplication.remaining_cents > 0)
        rows = query.order_by(CreditApplication.maturity_date, CreditApplication.created_at).all()
        return [row[0] for row in rows]


class RepaymentRepository:
    """Repository for repayments (append-only)"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> Repayment:
        repayment = Repayment(**fields)
        self.db.add(repayment)
        self.db.flush()
        return repayment

    def list_by_credit(self, credit_id: uuid.UUID) -> List[Repayment]:
        return (
            self.db.query(Repayment)
            .filter(Repayment.credit_id == credit_id)
            .order_by(Repayment.paid_on, Repayment.created_at)
            .all()
        )

    def last_paid_on(self, credit_id: uuid.UUID) -> Optional[date]:
        return self.db.query(func.max(Repayment.paid_on)).filter(Repayment.credit_id == credit_id).scalar()

    def count_by_credit(self, credit_id: uuid.UUID) -> int:
        return self.db.query(func.count(Repayment.id)).filter(Repayment.credit_id == credit_id).scalar()


class DetentionRepository:
    """Repository for virtual detention records"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> VirtualDetention:
        detention = VirtualDetention(**fields)
        self.db.add(detention)
        self.db.flush()
        return detention

    def get_active(self, customer_id: str, credit_id: uuid.UUID) -> Optional[VirtualDetention]:
        return (
            self.db.query(VirtualDetention)
            .filter(
                VirtualDetention.customer_id == customer_id,
                VirtualDetention.credit_id == credit_id,
                VirtualDetention.is_active.is_(True),
            )
            .first()
        )

    def has_active(self, customer_id: str) -> bool:
        return (
            self.db.query(VirtualDetention.id)
            .filter(VirtualDetention.customer_id == customer_id, VirtualDetention.is_active.is_(True))
            .first()
            is not None
        )


class GuaranteeRepository:
    """Repository for sponsor guarantees"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> SponsorGuarantee:
        guarantee = SponsorGuarantee(**fields)
        self.db.add(guarantee)
        self.db.flush()
        return guarantee

    def get_by_credit(self, credit_id: uuid.UUID, for_update: bool = False) -> Optional[SponsorGuarantee]:
        query = self.db.query(SponsorGuarantee).filter(SponsorGuarantee.credit_id == credit_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def count_active(self, sponsor_id: str) -> int:
        return (
            self.db.query(func.count(SponsorGuarantee.id))
            .filter(SponsorGuarantee.sponsor_id == sponsor_id, SponsorGuarantee.is_active.is_(True))
            .scalar()
        )


class RenewalRepository:
    """Repository for renewal attempts"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> RenewalRecord:
        record = RenewalRecord(**fields)
        self.db.add(record)
        self.db.flush()
        return record

    def get_by_credit(self, credit_id: uuid.UUID) -> Optional[RenewalRecord]:
        return self.db.query(RenewalRecord).filter(RenewalRecord.credit_id == credit_id).first()


class SavingsRepository:
    """Repository for programmed-savings cycles"""

    def __init__(self, db: Session):
        self.db = db

    def create_cycle(self, **fields) -> SavingsCycle:
        cycle = SavingsCycle(**fields)
        self.db.add(cycle)
        self.db.flush()
        return cycle

    def count_completed(self, customer_id: str) -> int:
        return (
            self.db.query(func.count(SavingsCycle.id))
            .filter(SavingsCycle.customer_id == customer_id, SavingsCycle.status == "COMPLETED")
            .scalar()
        )


class GroupRepository:
    """Repository for savings groups, members and contributions"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, group_id: uuid.UUID) -> Optional[SavingsGroup]:
        return self.db.get(SavingsGroup, group_id)

    def create(self, name: str, created_by: str, created_on: date, member_ids: List[str]) -> SavingsGroup:
        group = SavingsGroup(name=name, created_by=created_by, created_on=created_on, is_active=True)
        self.db.add(group)
        self.db.flush()

        for customer_id in member_ids:
            self.db.add(GroupMember(group_id=group.id, customer_id=customer_id, joined_on=created_on))
        self.db.flush()
        return group

    def is_member(self, group_id: uuid.UUID, customer_id: str) -> bool:
        return (
            self.db.query(GroupMember.id)
            .filter(GroupMember.group_id == group_id, GroupMember.customer_id == customer_id)
            .first()
            is not None
        )

    def count_members(self, group_id: uuid.UUID) -> int:
        return self.db.query(func.count(GroupMember.id)).filter(GroupMember.group_id == group_id).scalar()

    def add_contribution(self, **fields) -> GroupContribution:
        contribution = GroupContribution(**fields)
        self.db.add(contribution)
        self.db.flush()
        return contribution

    def pooled_cents(self, group_id: uuid.UUID, currency: str) -> int:
        return (
            self.db.query(func.coalesce(func.sum(GroupContribution.amount_cents), 0))
            .filter(GroupContribution.group_id == group_id, GroupContribution.currency == currency)
            .scalar()
        )


class WebhookRepository:
    """Repository for the notification outbox"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> OutboundWebhook:
        webhook = OutboundWebhook(**fields)
        self.db.add(webhook)
        self.db.flush()
        return webhook

    def exists(self, dedupe_key: str) -> bool:
        return self.db.query(OutboundWebhook.id).filter(OutboundWebhook.dedupe_key == dedupe_key).first() is not None

    def list_pending(self, limit: int, max_attempts: int) -> List[OutboundWebhook]:
        return (
            self.db.query(OutboundWebhook)
            .filter(OutboundWebhook.status == "pending", OutboundWebhook.attempts < max_attempts)
            .order_by(OutboundWebhook.created_at)
            .limit(limit)
            .all()
        )

    def list_by_customer(self, customer_id: str) -> List[OutboundWebhook]:
        return self.db.query(OutboundWebhook).filter(OutboundWebhook.customer_id == customer_id).all()


class AuditRepository:
    """Repository for the audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> AuditLog:
        entry = AuditLog(**fields)
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_by_entity(self, entity_id: str) -> List[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at)
            .all()
        )
