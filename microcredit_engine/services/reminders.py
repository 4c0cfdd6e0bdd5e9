"""Repayment reminders for outstanding credits"""

import uuid
from datetime import date

from microcredit_engine.domain.lifecycle import OUTSTANDING_STATUSES
from microcredit_engine.domain.models import CreditStatus, ProductType
from microcredit_engine.services.collaborators import OutboxNotifier
from microcredit_engine.services.credits import CreditService, fmt_money

# Products repaid in monthly installments
INSTALLMENT_PRODUCTS = (
    ProductType.INDIVIDUAL_TERM,
    ProductType.SPONSOR_GUARANTEED,
    ProductType.SEASONAL,
    ProductType.GROUP_SAVINGS,
)


class ReminderService:
    """Queues at most one reminder per credit, kind and business date"""

    def __init__(self, credits: CreditService, notifier: OutboxNotifier):
        self.credits = credits
        self.notifier = notifier

    def send_installment_reminder(self, credit_id: uuid.UUID, business_date: date) -> bool:
        credit = self.credits.get_credit(credit_id)
        if CreditStatus(credit.status) not in OUTSTANDING_STATUSES or credit.remaining_cents <= 0:
            return False

        installment = min(credit.installment_cents or credit.remaining_cents, credit.remaining_cents)
        return self.notifier.notify(
            credit.customer_id,
            "INSTALLMENT_REMINDER",
            "Installment reminder",
            f"Your next installment of {fmt_money(installment, credit.currency)} is due. "
            f"Outstanding: {fmt_money(credit.remaining_cents, credit.currency)}, "
            f"final maturity {credit.maturity_date.isoformat()}.",
            credit_id=credit.id,
            dedupe_key=f"installment-reminder:{credit.id}:{business_date.isoformat()}",
        )

    def send_due_reminder(self, credit_id: uuid.UUID, business_date: date) -> bool:
        credit = self.credits.get_credit(credit_id)
        if CreditStatus(credit.status) not in OUTSTANDING_STATUSES or credit.remaining_cents <= 0:
            return False

        return self.notifier.notify(
            credit.customer_id,
            "DUE_REMINDER",
            "Overdraft due today",
            f"Please repay {fmt_money(credit.remaining_cents, credit.currency)} today to avoid "
            f"automatic collection and late interest.",
            credit_id=credit.id,
            dedupe_key=f"due-reminder:{credit.id}:{business_date.isoformat()}",
        )
