"""Best-effort collaborators: notification outbox and audit sink"""

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from microcredit_engine.config import settings
from microcredit_engine.infrastructure.database.models import CreditApplication, EligibilityProfile
from microcredit_engine.infrastructure.database.repositories import AuditRepository, WebhookRepository
from microcredit_engine.infrastructure.observability.metrics import collaborator_failure_counter

logger = logging.getLogger(__name__)


class OutboxNotifier:
    """
    Queues customer notifications in the outbound_webhook table.

    Rows are written in the caller's transaction, so a notification only
    leaves once the business change it describes is committed. Delivery
    happens later through NotificationDispatcher. Each row is inserted
    under its own SAVEPOINT: a failed insert is rolled back alone, logged
    and counted, and the caller's transaction carries on.
    """

    def __init__(self, db: Session, target_url: str | None = None):
        self.db = db
        self.webhooks = WebhookRepository(db)
        self.target_url = target_url or settings.notification_webhook_url

    def notify(
        self,
        customer_id: str,
        notification_type: str,
        title: str,
        body: str,
        credit_id: uuid.UUID | None = None,
        dedupe_key: str | None = None,
    ) -> bool:
        """Queue a notification. Returns False when skipped as a duplicate or on failure."""
        # Caller's pending changes must fail on their own, outside the savepoint
        self.db.flush()
        try:
            with self.db.begin_nested():
                if dedupe_key and self.webhooks.exists(dedupe_key):
                    return False
                self.webhooks.create(
                    event_type=notification_type,
                    customer_id=customer_id,
                    payload={
                        "customer_id": customer_id,
                        "type": notification_type,
                        "title": title,
                        "body": body,
                        "credit_id": str(credit_id) if credit_id else None,
                    },
                    target_url=self.target_url,
                    dedupe_key=dedupe_key,
                )
        except SQLAlchemyError:
            collaborator_failure_counter.labels(collaborator="notifier").inc()
            logger.exception(
                "Failed to queue notification",
                extra={"customer_id": customer_id, "notification_type": notification_type},
            )
            return False
        return True


class AuditRecorder:
    """Writes audit rows under a SAVEPOINT in the caller's transaction; failures are logged, never raised"""

    def __init__(self, db: Session):
        self.db = db
        self.audits = AuditRepository(db)

    def record(
        self,
        action: str,
        actor_id: str,
        entity_type: str,
        entity_id: Any,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.db.flush()
        try:
            with self.db.begin_nested():
                self.audits.create(
                    action=action,
                    actor_id=actor_id,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    before=before,
                    after=after,
                )
        except SQLAlchemyError:
            collaborator_failure_counter.labels(collaborator="audit").inc()
            logger.exception("Failed to record audit entry", extra={"action": action, "entity_id": str(entity_id)})


def credit_snapshot(credit: CreditApplication) -> Dict[str, Any]:
    """JSON-safe view of a credit for audit trails"""
    return {
        "status": credit.status,
        "currency": credit.currency,
        "approved_cents": credit.approved_cents,
        "total_paid_cents": credit.total_paid_cents,
        "late_interest_cents": credit.late_interest_cents,
        "remaining_cents": credit.remaining_cents,
    }


def profile_snapshot(profile: EligibilityProfile) -> Dict[str, Any]:
    return {
        "standing": profile.standing,
        "score": profile.score,
        "credit_lines": {
            line.currency: {"limit_cents": line.limit_cents, "used_cents": line.used_cents}
            for line in profile.credit_lines
        },
    }
