"""Notification webhook client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Any, Dict
from vendor_credit.config import settings
from vendor_credit.domain.exceptions import NotificationDeliveryError
from vendor_credit.infrastructure.observability.metrics import (
    notification_latency_histogram,
    notification_delivery_failure_counter,
)


class NotificationClient:
    """Hands notification envelopes to the external delivery service (push/SMS)"""

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base

    async def send(self, envelope: Dict[str, Any]) -> None:
        """
        Deliver one {vendor_id, type, title, message, priority, metadata} envelope.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^attempt)
        - Retries on 5xx/4xx responses and network failures

        Raises:
            NotificationDeliveryError: After the final failed attempt
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=envelope)
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notification_delivery_failure_counter.inc()

                    if attempt >= self.max_retries:
                        raise NotificationDeliveryError(
                            f"Notification delivery failed after {attempt} attempts: {e}",
                            {"attempts": attempt, "notification_type": envelope.get("type")},
                        ) from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
