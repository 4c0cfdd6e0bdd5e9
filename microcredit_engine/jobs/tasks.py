"""Celery tasks wrapping the scheduled passes and outbox delivery"""

import asyncio
import logging
from dataclasses import asdict
from datetime import date
from typing import Any, Dict, Optional

from celery import shared_task

from microcredit_engine.domain.models import PassReport
from microcredit_engine.infrastructure.database.session import session_scope
from microcredit_engine.services.dispatch import NotificationDispatcher
from microcredit_engine.services.passes import (
    run_due_reminder_pass,
    run_eligibility_refresh_pass,
    run_renewal_pass,
    run_settlement_pass,
    run_weekly_reminder_pass,
)

logger = logging.getLogger(__name__)


def _business_date(as_of: Optional[str]) -> Optional[date]:
    return date.fromisoformat(as_of) if as_of else None


def _summary(report: PassReport) -> Dict[str, Any]:
    summary = asdict(report)
    summary["business_date"] = report.business_date.isoformat()
    return summary


@shared_task
def daily_settlement_cycle(as_of: Optional[str] = None) -> Dict[str, Any]:
    """Settlement pass, then renewal pass, for the same business date"""
    business_date = _business_date(as_of) or date.today()
    with session_scope() as db:
        settlement = run_settlement_pass(db, business_date)
        renewal = run_renewal_pass(db, business_date)
    return {"settlement": _summary(settlement), "renewal": _summary(renewal)}


@shared_task
def due_reminders(as_of: Optional[str] = None) -> Dict[str, Any]:
    with session_scope() as db:
        return _summary(run_due_reminder_pass(db, _business_date(as_of)))


@shared_task
def weekly_reminders(as_of: Optional[str] = None) -> Dict[str, Any]:
    with session_scope() as db:
        return _summary(run_weekly_reminder_pass(db, _business_date(as_of)))


@shared_task
def eligibility_refresh(as_of: Optional[str] = None) -> Dict[str, Any]:
    """Re-score every active customer and re-tier their credit lines"""
    with session_scope() as db:
        return _summary(run_eligibility_refresh_pass(db, _business_date(as_of)))


@shared_task
def dispatch_notifications() -> int:
    """Deliver queued notifications; returns how many were sent"""
    with session_scope() as db:
        delivered = asyncio.run(NotificationDispatcher(db).dispatch_pending())
    logger.info("Notification dispatch finished", extra={"delivered": delivered})
    return delivered
