"""Notification webhook client with exponential backoff retry logic"""

import asyncio
from typing import Any, Dict

import httpx

from microcredit_engine.config import settings
from microcredit_engine.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)


class NotificationClient:
    """Client for delivering customer notifications to the messaging gateway"""

    def __init__(self, webhook_url: str | None = None, max_retries: int | None = None, backoff_base: float | None = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds

    async def send(self, payload: Dict[str, Any], target_url: str | None = None) -> None:
        """
        Send one notification with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures, 4xx fail immediately
        - Tracks latency histogram and failure counter

        Args:
            payload: Notification data to send
            target_url: Override of the configured webhook URL
        """
        url = target_url or self.webhook_url
        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(url, json=payload, timeout=self.timeout)
                        response.raise_for_status()
                        return  # Success

                except httpx.HTTPStatusError as e:
                    notification_failure_counter.inc()
                    if e.response.status_code < 500:
                        # Client errors will not succeed on retry
                        raise
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise

                except httpx.RequestError:
                    notification_failure_counter.inc()
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise

                # Exponential backoff: 1s, 2s, 4s, 8s
                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)
