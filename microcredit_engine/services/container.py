"""Explicit wiring of the engine's services around one database session"""

from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from microcredit_engine.services.collaborators import AuditRecorder, OutboxNotifier
from microcredit_engine.services.credits import CreditService
from microcredit_engine.services.eligibility import EligibilityService
from microcredit_engine.services.groups import GroupService
from microcredit_engine.services.guarantees import GuaranteeLedger
from microcredit_engine.services.ledger import AccountLedger
from microcredit_engine.services.reminders import ReminderService
from microcredit_engine.services.renewal import RenewalService
from microcredit_engine.services.settlement import SettlementEngine


class ServiceContainer:
    """
    Builds every service once per session.

    `clock` supplies the business date; scheduled passes pin it to the
    date they run for.
    """

    def __init__(self, db: Session, clock: Callable[[], date] = date.today):
        self.db = db
        self.clock = clock
        self.audit = AuditRecorder(db)
        self.notifier = OutboxNotifier(db)
        self.ledger = AccountLedger(db)
        self.eligibility = EligibilityService(db, self.audit)
        self.guarantees = GuaranteeLedger(db, self.ledger, self.audit)
        self.credits = CreditService(
            db,
            self.ledger,
            self.eligibility,
            self.guarantees,
            self.notifier,
            self.audit,
            clock=clock,
        )
        self.settlement = SettlementEngine(db, self.ledger, self.credits, self.guarantees, self.notifier, self.audit)
        self.renewals = RenewalService(db, self.credits, self.notifier)
        self.reminders = ReminderService(self.credits, self.notifier)
        self.groups = GroupService(db, self.audit, clock=clock)
