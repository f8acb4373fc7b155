"""Customer notification webhook client with exponential backoff retry logic"""

import asyncio
import base64
import uuid
import httpx
from typing import Optional
from bnpl_ledger.config import settings
from bnpl_ledger.infrastructure.documents.renderer import Document
from bnpl_ledger.infrastructure.observability.metrics import (
    notification_latency_histogram,
    notification_failure_counter,
)


class NotificationClient:
    """Client for delivering rendered documents to the customer notification service"""

    def __init__(self, webhook_url: str | None = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.transport = transport

    async def send(self, customer_id: uuid.UUID, document: Document) -> None:
        """
        Deliver one document to a customer with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base^attempt)
        - Retries on 5xx errors and network failures
        - Tracks latency histogram and failure counter

        Args:
            customer_id: Recipient
            document: Rendered artifact to attach
        """
        payload = {
            "customer_id": str(customer_id),
            "kind": document.kind,
            "filename": document.filename,
            "content_type": document.content_type,
            "body": base64.b64encode(document.body).decode("ascii"),
        }

        attempt = 0
        async with httpx.AsyncClient(transport=self.transport, timeout=settings.http_timeout_seconds) as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1
                    notification_failure_counter.inc()

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
