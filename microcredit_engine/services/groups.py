"""Savings groups backing the group-savings credit product"""

import logging
import uuid
from datetime import date
from typing import Callable, List

from sqlalchemy.orm import Session

from microcredit_engine.domain.exceptions import GroupMembershipError, InvalidAmountError, NotFoundError
from microcredit_engine.domain.models import Currency, Money
from microcredit_engine.domain.products.group_savings import MAX_MEMBERS, MIN_MEMBERS
from microcredit_engine.infrastructure.database.models import GroupContribution, SavingsGroup
from microcredit_engine.infrastructure.database.repositories import CustomerRepository, GroupRepository
from microcredit_engine.services.collaborators import AuditRecorder

logger = logging.getLogger(__name__)


class GroupService:
    def __init__(self, db: Session, audit: AuditRecorder, clock: Callable[[], date] = date.today):
        self.groups = GroupRepository(db)
        self.customers = CustomerRepository(db)
        self.audit = audit
        self.clock = clock

    def create_group(self, name: str, created_by: str, member_ids: List[str]) -> SavingsGroup:
        """Create an active group of 5 to 10 distinct existing customers"""
        members = list(dict.fromkeys(member_ids))
        if not MIN_MEMBERS <= len(members) <= MAX_MEMBERS:
            raise GroupMembershipError(f"A savings group needs {MIN_MEMBERS} to {MAX_MEMBERS} members, got {len(members)}")
        for customer_id in members:
            if self.customers.get(customer_id) is None:
                raise NotFoundError(f"Customer {customer_id} not found")

        group = self.groups.create(name, created_by, self.clock(), members)
        self.audit.record("group.create", created_by, "savings_group", group.id, after={"name": name, "members": members})
        logger.info("Savings group created", extra={"group_id": str(group.id), "member_count": len(members)})
        return group

    def record_contribution(self, group_id: uuid.UUID, customer_id: str, amount: Money) -> GroupContribution:
        group = self.groups.get(group_id)
        if group is None:
            raise NotFoundError(f"Savings group {group_id} not found")
        if not self.groups.is_member(group_id, customer_id):
            raise GroupMembershipError(f"Customer {customer_id} is not a member of group {group_id}")
        if amount.amount_cents <= 0:
            raise InvalidAmountError("Contribution must be positive")

        return self.groups.add_contribution(
            group_id=group_id,
            customer_id=customer_id,
            amount_cents=amount.amount_cents,
            currency=amount.currency.value,
            contributed_on=self.clock(),
        )

    def pooled_savings(self, group_id: uuid.UUID, currency: Currency) -> Money:
        return Money(self.groups.pooled_cents(group_id, currency.value), currency)
