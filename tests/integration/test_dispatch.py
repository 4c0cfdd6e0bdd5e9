"""Integration tests for outbox delivery"""

import asyncio
import httpx
import pytest
from unittest.mock import AsyncMock, patch
from microcredit_engine.config import settings
from microcredit_engine.services.dispatch import NotificationDispatcher

SEND = "microcredit_engine.infrastructure.clients.notifications.NotificationClient.send"


def http_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", settings.notification_webhook_url)
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


@pytest.fixture
def queued(services, make_customer):
    make_customer("cust-1")
    services.notifier.notify("cust-1", "CREDIT_APPROVED", "Credit approved", "Your credit is approved.")
    (webhook,) = services.notifier.webhooks.list_by_customer("cust-1")
    return webhook


def dispatch(db) -> int:
    return asyncio.run(NotificationDispatcher(db).dispatch_pending())


@patch(SEND)
def test_delivered_row_is_marked_sent(mock_send: AsyncMock, db, queued):
    mock_send.return_value = None

    assert dispatch(db) == 1

    assert queued.status == "sent"
    assert queued.attempts == 1
    assert queued.last_attempt_at is not None
    payload = mock_send.call_args.args[0]
    assert payload["type"] == "CREDIT_APPROVED"
    assert payload["customer_id"] == "cust-1"


@patch(SEND)
def test_client_error_fails_immediately(mock_send: AsyncMock, db, queued):
    mock_send.side_effect = http_error(400)

    assert dispatch(db) == 0

    assert queued.status == "failed"
    assert queued.attempts == 1


@patch(SEND)
def test_server_error_stays_pending(mock_send: AsyncMock, db, queued):
    mock_send.side_effect = http_error(503)

    assert dispatch(db) == 0

    assert queued.status == "pending"
    assert queued.attempts == 1


@patch(SEND)
def test_network_error_gives_up_after_max_attempts(mock_send: AsyncMock, db, queued):
    mock_send.side_effect = httpx.ConnectError("connection refused")
    queued.attempts = settings.webhook_max_retries - 1
    db.flush()

    dispatch(db)

    assert queued.status == "failed"
    assert queued.attempts == settings.webhook_max_retries


@patch(SEND)
def test_sent_rows_are_not_resent(mock_send: AsyncMock, db, queued):
    mock_send.return_value = None

    dispatch(db)
    dispatch(db)

    assert mock_send.await_count == 1


def test_duplicate_notifications_are_skipped(services, make_customer):
    make_customer("cust-1")

    assert services.notifier.notify("cust-1", "DUE_REMINDER", "Due", "Pay today", dedupe_key="due:1") is True
    assert services.notifier.notify("cust-1", "DUE_REMINDER", "Due", "Pay today", dedupe_key="due:1") is False
    assert len(services.notifier.webhooks.list_by_customer("cust-1")) == 1


def test_each_dispatch_run_makes_one_http_attempt(db, queued):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = httpx.ConnectError("connection refused")

        assert dispatch(db) == 0

    assert mock_post.await_count == 1
    assert queued.status == "pending"
    assert queued.attempts == 1
