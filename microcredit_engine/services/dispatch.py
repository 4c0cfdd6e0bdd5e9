"""Delivery of queued notifications from the outbox table"""

import logging
from datetime import datetime, timezone

import httpx
from sqlalchemy.orm import Session

from microcredit_engine.config import settings
from microcredit_engine.infrastructure.clients.notifications import NotificationClient
from microcredit_engine.infrastructure.database.models import OutboundWebhook
from microcredit_engine.infrastructure.database.repositories import WebhookRepository

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Sends pending outbox rows and records the delivery result on each row.

    Every send is a single HTTP attempt; retries happen across dispatch runs,
    counted on the row against webhook_max_retries.
    """

    def __init__(self, db: Session, client: NotificationClient | None = None, batch_size: int | None = None):
        self.db = db
        self.client = client or NotificationClient(max_retries=1)
        self.batch_size = batch_size or settings.dispatch_batch_size
        self.webhooks = WebhookRepository(db)

    async def dispatch_pending(self) -> int:
        """Returns the number of rows delivered"""
        pending = self.webhooks.list_pending(self.batch_size, settings.webhook_max_retries)
        delivered = 0
        for webhook in pending:
            if await self._deliver(webhook):
                delivered += 1
            self.db.commit()

        logger.info("Outbox dispatched", extra={"pending": len(pending), "delivered": delivered})
        return delivered

    async def _deliver(self, webhook: OutboundWebhook) -> bool:
        webhook.attempts += 1
        webhook.last_attempt_at = datetime.now(timezone.utc)
        try:
            await self.client.send(webhook.payload, target_url=webhook.target_url)
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                webhook.status = "failed"
            elif webhook.attempts >= settings.webhook_max_retries:
                webhook.status = "failed"
            logger.warning(
                f"Notification delivery failed: {e}",
                extra={"webhook_id": str(webhook.id), "attempts": webhook.attempts},
            )
            return False

        webhook.status = "sent"
        return True
