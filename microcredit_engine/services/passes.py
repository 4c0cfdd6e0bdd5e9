"""Scheduled pass entry points: settlement, renewal, reminders and eligibility refresh"""

import logging
import time
import uuid
from datetime import date
from typing import Callable, Hashable, Iterable

from sqlalchemy.orm import Session

from microcredit_engine.domain.lifecycle import OUTSTANDING_STATUSES
from microcredit_engine.domain.models import PassReport, ProductType
from microcredit_engine.infrastructure.database.repositories import CreditRepository, CustomerRepository
from microcredit_engine.infrastructure.observability.logging import log_pass_summary
from microcredit_engine.infrastructure.observability.metrics import pass_duration_histogram, pass_item_failure_counter
from microcredit_engine.services.container import ServiceContainer
from microcredit_engine.services.reminders import INSTALLMENT_PRODUCTS

logger = logging.getLogger(__name__)

OUTSTANDING = [status.value for status in OUTSTANDING_STATUSES]


def _run_pass(
    name: str,
    db: Session,
    business_date: date,
    item_ids: Iterable[Hashable],
    handler: Callable[[Hashable], bool],
) -> PassReport:
    """
    Run `handler` for each item (a credit or a customer) in its own transaction.

    A failing item is rolled back, logged and counted, and the pass moves
    on; it stays in its previous state for the next run. The handler
    returns False for items it skipped.
    """
    report = PassReport(name=name, business_date=business_date)
    start_time = time.time()

    with pass_duration_histogram.labels(pass_name=name).time():
        for item_id in item_ids:
            report.examined += 1
            try:
                processed = handler(item_id)
                db.commit()
            except Exception:
                db.rollback()
                report.failed += 1
                report.details.append(f"{item_id}: failed")
                pass_item_failure_counter.labels(pass_name=name).inc()
                logger.exception(
                    "Pass item failed",
                    extra={"pass_name": name, "item_id": str(item_id), "business_date": str(business_date)},
                )
                continue

            if processed:
                report.processed += 1
            else:
                report.skipped += 1

    duration_ms = (time.time() - start_time) * 1000
    log_pass_summary(name, business_date, report.examined, report.processed, report.skipped, report.failed, duration_ms)
    return report


def run_settlement_pass(db: Session, as_of: date | None = None) -> PassReport:
    """Settle every outstanding credit past maturity plus grace. Safe to re-run for the same day."""
    business_date = as_of or date.today()
    services = ServiceContainer(db, clock=lambda: business_date)
    candidates = CreditRepository(db).list_ids_with_status(
        OUTSTANDING,
        maturity_before=business_date,
        remaining_zero=False,
    )

    def settle(credit_id: uuid.UUID) -> bool:
        outcome = services.settlement.settle_credit(credit_id, business_date)
        return outcome.outcome != "skipped"

    return _run_pass("settlement", db, business_date, candidates, settle)


def run_renewal_pass(db: Session, as_of: date | None = None) -> PassReport:
    """Renew or close every fully repaid renewable overdraft"""
    business_date = as_of or date.today()
    services = ServiceContainer(db, clock=lambda: business_date)
    candidates = CreditRepository(db).list_ids_with_status(
        OUTSTANDING,
        product_types=[ProductType.SHORT_OVERDRAFT.value],
        remaining_zero=True,
    )

    def renew(credit_id: uuid.UUID) -> bool:
        return services.renewals.renew_credit(credit_id, business_date) is not None

    return _run_pass("renewal", db, business_date, candidates, renew)


def run_weekly_reminder_pass(db: Session, as_of: date | None = None) -> PassReport:
    """Installment reminders for term-style credits"""
    business_date = as_of or date.today()
    services = ServiceContainer(db, clock=lambda: business_date)
    candidates = CreditRepository(db).list_ids_with_status(
        OUTSTANDING,
        product_types=[product.value for product in INSTALLMENT_PRODUCTS],
        remaining_zero=False,
    )

    def remind(credit_id: uuid.UUID) -> bool:
        return services.reminders.send_installment_reminder(credit_id, business_date)

    return _run_pass("weekly_reminders", db, business_date, candidates, remind)


def run_due_reminder_pass(db: Session, as_of: date | None = None) -> PassReport:
    """Same-day reminders for overdrafts maturing on the business date"""
    business_date = as_of or date.today()
    services = ServiceContainer(db, clock=lambda: business_date)
    candidates = CreditRepository(db).list_ids_with_status(
        OUTSTANDING,
        product_types=[ProductType.SHORT_OVERDRAFT.value],
        maturity_on=business_date,
        remaining_zero=False,
    )

    def remind(credit_id: uuid.UUID) -> bool:
        return services.reminders.send_due_reminder(credit_id, business_date)

    return _run_pass("due_reminders", db, business_date, candidates, remind)


def run_eligibility_refresh_pass(db: Session, as_of: date | None = None) -> PassReport:
    """Recompute score, counters and credit-line tiers for every active customer"""
    business_date = as_of or date.today()
    services = ServiceContainer(db, clock=lambda: business_date)
    customer_ids = CustomerRepository(db).list_active_ids()

    def refresh(customer_id: str) -> bool:
        services.eligibility.refresh_statistics(customer_id)
        return True

    return _run_pass("eligibility_refresh", db, business_date, customer_ids, refresh)
