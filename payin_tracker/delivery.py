"""
Delivery channels for detected payments.
"""

from typing import Optional, Sequence

import httpx
import structlog

from .tracker import PaymentRecord

logger = structlog.get_logger()


class HttpPaymentSink:
    """
    Posts payment batches to a downstream HTTP endpoint.

    The body is a JSON list of payment records. Any non-2xx response
    raises, so the block is retried on the next run (at-least-once).
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"X-API-Key": self.api_key} if self.api_key else None
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_all(self, records: Sequence[PaymentRecord]) -> int:
        if not records:
            return 0

        client = await self._get_client()
        response = await client.post(self.url, json=[r.to_dict() for r in records])
        response.raise_for_status()

        logger.info(
            "payments_delivered",
            count=len(records),
            unique_ids=[r.unique_id for r in records],
        )
        return len(records)


class LoggingPaymentSink:
    """Logs payments instead of delivering them (dry run)."""

    async def send(self, record: PaymentRecord) -> None:
        logger.info("payment_detected", **record.to_dict())

    async def close(self) -> None:
        return None
