"""Event webhook client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Dict, Any
from peerloan.config import settings
from peerloan.infrastructure.observability.metrics import (
    event_delivery_failure_counter,
    event_delivery_latency_histogram,
)


class EventWebhookClient:
    """Client for delivering outbox events to the subscriber webhook"""

    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = webhook_url or settings.event_webhook_url
        self.timeout = settings.http_timeout_seconds
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base

    async def send_event(self, channel: str, payload: Dict[str, Any]) -> None:
        """
        Deliver one event with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base^attempt)
        - Retries on 5xx errors and network failures
        - Tracks latency histogram and failure counter

        Raises:
            httpx.HTTPError: After the final failed attempt
        """
        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with event_delivery_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json={"channel": channel, "payload": payload},
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1
                    event_delivery_failure_counter.inc()

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
