"""Eligibility & scoring service - standing, score, credit lines, and the customer facts product rules read"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from microcredit_engine.config import settings
from microcredit_engine.domain.exceptions import NotFoundError
from microcredit_engine.domain.models import (
    AccountType,
    CreditStatus,
    Currency,
    CustomerCategory,
    EligibilityResult,
    EntryKind,
    Money,
    RepaymentHistory,
    Standing,
)
from microcredit_engine.domain.products.base import GroupFacts, SponsorFacts
from microcredit_engine.domain.scoring import calculate_score, determine_credit_limit, on_time_rate, standing_reasons
from microcredit_engine.infrastructure.database.models import CreditLine, EligibilityProfile
from microcredit_engine.infrastructure.database.repositories import (
    CreditRepository,
    CustomerRepository,
    DetentionRepository,
    GroupRepository,
    GuaranteeRepository,
    ProfileRepository,
    RepaymentRepository,
    SavingsRepository,
)
from microcredit_engine.services.collaborators import AuditRecorder, profile_snapshot
from microcredit_engine.services.ledger import AccountLedger
from microcredit_engine.utils.date_utils import distinct_days, distinct_iso_weeks

logger = logging.getLogger(__name__)

DEFAULTED_STATUSES = {CreditStatus.DEFAULTED.value, CreditStatus.LEGAL_PURSUIT.value}


class EligibilityService:
    """Owns eligibility profiles and credit lines; every method runs in the caller's transaction"""

    def __init__(self, db: Session, audit: AuditRecorder):
        self.db = db
        self.audit = audit
        self.profiles = ProfileRepository(db)
        self.customers = CustomerRepository(db)
        self.credits = CreditRepository(db)
        self.repayments = RepaymentRepository(db)

    # ----- profiles and lines -----

    def get_profile(self, customer_id: str, for_update: bool = False) -> EligibilityProfile:
        """Fetch the profile, creating a neutral one on first use"""
        profile = self.profiles.get_by_customer(customer_id, for_update=for_update)
        if profile is not None:
            return profile

        if self.customers.get(customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        history = self.history(customer_id)
        profile = self.profiles.create(customer_id, score=calculate_score(history))
        for currency in Currency:
            self._line(profile, currency)
        logger.info("Eligibility profile created", extra={"customer_id": customer_id, "score": profile.score})
        return profile

    def _line(self, profile: EligibilityProfile, currency: Currency, for_update: bool = False) -> CreditLine:
        line = self.profiles.get_line(profile.id, currency.value, for_update=for_update)
        if line is None:
            line = self.profiles.create_line(profile, currency.value, self._tier_limit(profile.score, currency))
        return line

    @staticmethod
    def _tier_limit(score: int, currency: Currency) -> int:
        return determine_credit_limit(score, settings.credit_limit_tiers.get(currency.value, []))

    # ----- checks -----

    def check_eligibility(self, customer_id: str, amount: Money) -> EligibilityResult:
        """Global standing check, fails closed on blacklisting"""
        result, _ = self._evaluate(customer_id, amount)
        return result

    def standing_reasons(self, customer_id: str, amount: Money) -> List[str]:
        """Every failing global condition, merged into product eligibility"""
        _, reasons = self._evaluate(customer_id, amount)
        return reasons

    def _evaluate(self, customer_id: str, amount: Money) -> Tuple[EligibilityResult, List[str]]:
        profile = self.get_profile(customer_id)
        line = self._line(profile, amount.currency)
        standing = Standing(profile.standing)

        if standing == Standing.BLACKLISTED:
            score, available = 0, 0
        else:
            score, available = profile.score, max(0, line.limit_cents - line.used_cents)

        reasons = standing_reasons(
            standing,
            score,
            amount.amount_cents,
            available,
            settings.min_credit_score,
            blacklist_reason=profile.blacklist_reason,
        )
        result = EligibilityResult(
            eligible=not reasons,
            standing=standing,
            score=score,
            limit=Money(line.limit_cents, amount.currency),
            used=Money(line.used_cents, amount.currency),
            available=Money(available, amount.currency),
            reason=reasons[0] if reasons else None,
        )
        return result, reasons

    # ----- statistics -----

    def history(self, customer_id: str) -> RepaymentHistory:
        """Repayment history derived from every disbursed credit of the customer"""
        history = RepaymentHistory()
        for credit in self.credits.list_disbursed_by_customer(customer_id):
            if credit.status == CreditStatus.CANCELLED.value:
                continue
            history.total_loans += 1
            if credit.status in DEFAULTED_STATUSES:
                history.defaulted_loans += 1
            elif credit.status == CreditStatus.COMPLETED.value:
                history.completed_loans += 1
                last_paid_on = self.repayments.last_paid_on(credit.id)
                if last_paid_on is None or credit.maturity_date is None or last_paid_on <= credit.maturity_date:
                    history.on_time_loans += 1
                else:
                    history.late_loans += 1
        return history

    def refresh_statistics(self, customer_id: str) -> EligibilityProfile:
        """Recompute score and counters, then re-tier every credit line"""
        profile = self.get_profile(customer_id, for_update=True)
        history = self.history(customer_id)

        profile.total_loans = history.total_loans
        profile.completed_loans = history.completed_loans
        profile.defaulted_loans = history.defaulted_loans
        profile.late_loans = history.late_loans
        profile.on_time_rate = on_time_rate(history)
        profile.last_reviewed_at = datetime.now(timezone.utc)

        if profile.standing == Standing.BLACKLISTED.value:
            profile.score = 0
        else:
            profile.score = calculate_score(history)

        for currency in Currency:
            line = self._line(profile, currency, for_update=True)
            tier = self._tier_limit(profile.score, currency)
            line.limit_cents = line.limit_override_cents if line.limit_override_cents is not None else tier

        self.db.flush()
        logger.info(
            "Statistics refreshed",
            extra={"customer_id": customer_id, "score": profile.score, "total_loans": history.total_loans},
        )
        return profile

    # ----- standing overrides -----

    def blacklist(self, customer_id: str, reason: str, actor_id: str) -> EligibilityProfile:
        profile = self.get_profile(customer_id, for_update=True)
        before = profile_snapshot(profile)

        profile.standing = Standing.BLACKLISTED.value
        profile.score = 0
        profile.blacklist_reason = reason
        profile.blacklisted_by = actor_id
        profile.blacklisted_at = datetime.now(timezone.utc)
        profile.whitelist_reason = None
        profile.whitelisted_by = None
        profile.whitelisted_at = None
        self.db.flush()

        self.audit.record("customer.blacklist", actor_id, "eligibility_profile", customer_id, before, profile_snapshot(profile))
        logger.warning("Customer blacklisted", extra={"customer_id": customer_id, "actor_id": actor_id})
        return profile

    def whitelist(self, customer_id: str, reason: str, actor_id: str, new_limit: Optional[Money] = None) -> EligibilityProfile:
        """Clear blacklist markers and optionally raise the limit of one currency line"""
        profile = self.get_profile(customer_id, for_update=True)
        before = profile_snapshot(profile)

        profile.standing = Standing.WHITELISTED.value
        profile.blacklist_reason = None
        profile.blacklisted_by = None
        profile.blacklisted_at = None
        profile.whitelist_reason = reason
        profile.whitelisted_by = actor_id
        profile.whitelisted_at = datetime.now(timezone.utc)
        profile.score = calculate_score(self.history(customer_id))

        if new_limit is not None:
            line = self._line(profile, new_limit.currency, for_update=True)
            line.limit_override_cents = new_limit.amount_cents
            line.limit_cents = new_limit.amount_cents
        self.db.flush()

        self.audit.record("customer.whitelist", actor_id, "eligibility_profile", customer_id, before, profile_snapshot(profile))
        logger.info("Customer whitelisted", extra={"customer_id": customer_id, "actor_id": actor_id})
        return profile

    def reset_standing(self, customer_id: str, actor_id: str) -> EligibilityProfile:
        """Back to NEUTRAL with overrides cleared and a fresh score"""
        profile = self.get_profile(customer_id, for_update=True)
        before = profile_snapshot(profile)

        profile.standing = Standing.NEUTRAL.value
        profile.blacklist_reason = None
        profile.blacklisted_by = None
        profile.blacklisted_at = None
        profile.whitelist_reason = None
        profile.whitelisted_by = None
        profile.whitelisted_at = None
        for line in profile.credit_lines:
            line.limit_override_cents = None
        self.refresh_statistics(customer_id)

        self.audit.record("customer.reset_standing", actor_id, "eligibility_profile", customer_id, before, profile_snapshot(profile))
        return profile

    # ----- credit usage -----

    def reserve_credit(self, customer_id: str, amount: Money) -> None:
        profile = self.get_profile(customer_id)
        line = self._line(profile, amount.currency, for_update=True)
        line.used_cents += amount.amount_cents
        self.db.flush()

    def release_credit(self, customer_id: str, amount: Money) -> None:
        profile = self.get_profile(customer_id)
        line = self._line(profile, amount.currency, for_update=True)
        line.used_cents = max(0, line.used_cents - amount.amount_cents)
        self.db.flush()


class CustomerFactsReader:
    """Database-backed view of one customer, read by product eligibility rules"""

    def __init__(self, db: Session, ledger: AccountLedger, eligibility: EligibilityService, customer_id: str, business_date: date):
        self.customer_id = customer_id
        self.business_date = business_date
        self.ledger = ledger
        self.eligibility = eligibility
        self.customers = CustomerRepository(db)
        self.credits = CreditRepository(db)
        self.detentions = DetentionRepository(db)
        self.savings = SavingsRepository(db)
        self.guarantees = GuaranteeRepository(db)
        self.groups = GroupRepository(db)

        self.customer = self.customers.get(customer_id)
        if self.customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")

    def _mandatory_savings_available(self, customer_id: str, currency: Currency) -> Money:
        account = self.ledger.find_account(customer_id, AccountType.MANDATORY_SAVINGS)
        if account is None:
            return Money.zero(currency)
        return self.ledger.available(account.id, currency)

    def _deposit_dates(self, window_days: int) -> List[date]:
        account = self.ledger.find_account(self.customer_id, AccountType.MANDATORY_SAVINGS)
        if account is None:
            return []
        since = self.business_date - timedelta(days=window_days - 1)
        return self.ledger.accounts.entry_dates(account.id, EntryKind.DEPOSIT.value, since)

    def mandatory_savings_available(self, currency: Currency) -> Money:
        return self._mandatory_savings_available(self.customer_id, currency)

    def deposit_days(self, window_days: int) -> int:
        return distinct_days(self._deposit_dates(window_days), self.business_date, window_days)

    def deposit_weeks(self, window_days: int) -> int:
        return distinct_iso_weeks(self._deposit_dates(window_days), self.business_date, window_days)

    def has_recent_default(self, months: int) -> bool:
        since = self.business_date - relativedelta(months=months)
        return self.credits.count_defaults_since(self.customer_id, since) > 0

    def in_detention(self) -> bool:
        return self.detentions.has_active(self.customer_id)

    def completed_savings_cycles(self) -> int:
        return self.savings.count_completed(self.customer_id)

    def tenure_days(self) -> int:
        return (self.business_date - self.customer.joined_on).days

    def kyc_level(self) -> int:
        return self.customer.kyc_level

    def standing_reasons(self, amount: Money) -> List[str]:
        return self.eligibility.standing_reasons(self.customer_id, amount)

    def sponsor(self, sponsor_id: str, currency: Currency) -> Optional[SponsorFacts]:
        sponsor = self.customers.get(sponsor_id)
        if sponsor is None:
            return None
        return SponsorFacts(
            sponsor_id=sponsor_id,
            category=CustomerCategory(sponsor.category),
            active_guarantees=self.guarantees.count_active(sponsor_id),
            available_mandatory_savings=self._mandatory_savings_available(sponsor_id, currency),
        )

    def group(self, group_id: uuid.UUID, currency: Currency) -> Optional[GroupFacts]:
        group = self.groups.get(group_id)
        if group is None:
            return None
        return GroupFacts(
            group_id=group.id,
            is_active=group.is_active,
            is_member=self.groups.is_member(group_id, self.customer_id),
            member_count=self.groups.count_members(group_id),
            pooled_savings=Money(self.groups.pooled_cents(group_id, currency.value), currency),
        )
