"""Integration tests for the notification webhook client"""

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from vendor_credit.domain.exceptions import NotificationDeliveryError
from vendor_credit.infrastructure.clients.notifications import NotificationClient

WEBHOOK_URL = "http://notifications.test/hooks"

ENVELOPE = {
    "vendor_id": "vendor_1",
    "type": "repayment_due_reminder",
    "title": "Credit Repayment - Still Time to Save!",
    "message": "You have a pending credit payment of 100,000.00",
    "priority": "normal",
    "metadata": {"days_elapsed": 60},
}


def _response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", WEBHOOK_URL))


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_posts_envelope(mock_post: AsyncMock):
    mock_post.return_value = _response(202)
    client = NotificationClient(webhook_url=WEBHOOK_URL)

    await client.send(ENVELOPE)

    mock_post.assert_awaited_once_with(WEBHOOK_URL, json=ENVELOPE)


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_retries_then_succeeds(mock_post: AsyncMock):
    """Test a 503 and a network error are retried before a 200"""
    mock_post.side_effect = [
        _response(503),
        httpx.ConnectError("connection refused"),
        _response(200),
    ]
    client = NotificationClient(webhook_url=WEBHOOK_URL)

    await client.send(ENVELOPE)

    assert mock_post.await_count == 3


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_gives_up_after_max_retries(mock_post: AsyncMock):
    mock_post.return_value = _response(500)
    client = NotificationClient(webhook_url=WEBHOOK_URL)

    with pytest.raises(NotificationDeliveryError) as exc_info:
        await client.send(ENVELOPE)

    assert mock_post.await_count == client.max_retries
    assert exc_info.value.details["attempts"] == client.max_retries
    assert exc_info.value.details["notification_type"] == "repayment_due_reminder"
