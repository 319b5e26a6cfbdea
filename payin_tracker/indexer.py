"""
Block indexer client (QBitNinja-compatible).

Fetches serialized blocks and their metadata by height, by id, or
relative to the chain tip. Transient failures (timeouts, transport
errors, 5xx) are retried with exponential backoff, rebuilding the
HTTP client between attempts.
"""

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()


class ChainReaderError(Exception):
    """Indexer request failed and cannot be recovered by retrying."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class BlockMetadata(BaseModel):
    """Block metadata as reported by the indexer (`additionalInformation`)."""

    model_config = ConfigDict(populate_by_name=True)

    block_id: str = Field(..., alias="blockId", min_length=1)
    block_time: datetime = Field(..., alias="blockTime")
    height: int = Field(..., ge=0)
    confirmations: int = Field(default=0, ge=0)


class BlockData(BaseModel):
    """Block metadata plus the serialized block (empty for header-only queries)."""

    model_config = ConfigDict(populate_by_name=True)

    metadata: BlockMetadata = Field(..., alias="additionalInformation")
    raw_block: bytes = Field(default=b"", alias="block")

    @field_validator("raw_block", mode="before")
    @classmethod
    def _decode_block(cls, value: Any) -> bytes:
        if value is None:
            return b""
        if isinstance(value, bytes):
            return value
        if not isinstance(value, str):
            raise ValueError("block must be a hex or base64 string")
        try:
            return bytes.fromhex(value)
        except ValueError:
            pass
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise ValueError("block is neither hex nor base64") from e


@dataclass
class ChainReaderConfig:
    """Block indexer configuration."""

    base_url: str
    timeout: float = 30.0
    retry_attempts: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0


def is_transient_error(error: BaseException) -> bool:
    """
    Classify an HTTP failure as worth retrying.

    Timeouts and transport errors are transient, as are 5xx responses
    except 501 Not Implemented. Everything else fails immediately.
    """
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 and status != 501
    return False


class ChainReader:
    """Async client for the block indexer."""

    def __init__(
        self,
        config: ChainReaderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._reconnect = False

    async def _get_client(self) -> httpx.AsyncClient:
        stale: Optional[httpx.AsyncClient] = None
        if self._reconnect:
            # Detach before awaiting so concurrent callers never close or replace it twice.
            stale, self._client = self._client, None
            self._reconnect = False

        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/") + "/",
                timeout=self.config.timeout,
                transport=self._transport,
            )
        client = self._client

        if stale is not None:
            await stale.aclose()
        return client

    async def close(self) -> None:
        client, self._client = self._client, None
        if client:
            await client.aclose()

    def _before_retry(self, retry_state: RetryCallState) -> None:
        # Pooled connections can hang after a timeout; start the next attempt fresh.
        self._reconnect = True
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "indexer_retry",
            attempt=retry_state.attempt_number,
            max_attempts=self.config.retry_attempts,
            delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error) or type(error).__name__,
        )

    async def _request(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        attempts: Optional[int] = None,
    ) -> Optional[httpx.Response]:
        """
        GET `path`, retrying transient failures up to `attempts` times
        (default: the configured retry attempts).

        Returns None on 404.
        """
        response: Optional[httpx.Response] = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts or self.config.retry_attempts),
                wait=wait_exponential(
                    multiplier=self.config.retry_base_delay,
                    max=self.config.retry_max_delay,
                ),
                retry=retry_if_exception(is_transient_error),
                before_sleep=self._before_retry,
                reraise=True,
            ):
                with attempt:
                    client = await self._get_client()
                    response = await client.get(path, params=params)
                    if response.status_code == httpx.codes.NOT_FOUND:
                        response = None
                    else:
                        response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ChainReaderError(f"Indexer returned HTTP {status} for {path}", status_code=status) from e
        except httpx.HTTPError as e:
            raise ChainReaderError(f"Indexer request failed for {path}: {e!r}") from e

        return response

    async def _get_block(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        attempts: Optional[int] = None,
    ) -> Optional[BlockData]:
        response = await self._request(path, params, attempts)
        if response is None:
            logger.info("block_not_found", path=path)
            return None

        try:
            return BlockData.model_validate(response.json())
        except ValueError as e:
            logger.warning("block_response_invalid", path=path, error=str(e))
            return None

    async def get_block_by_height(self, height: int) -> Optional[BlockData]:
        """Get block at `height`, or None if the indexer does not have it."""
        return await self._get_block(f"blocks/{height}")

    async def get_block_by_id(self, block_id: str) -> Optional[BlockData]:
        """Get block by hash, or None if the indexer does not have it."""
        return await self._get_block(f"blocks/{block_id}")

    async def get_last_confirmed_block(self, confirmation_limit: int = 0) -> Optional[BlockData]:
        """
        Get the header of the newest block with at least
        `confirmation_limit` confirmations (the tip itself counts as one).
        """
        if confirmation_limit > 0:
            path = f"blocks/tip-{confirmation_limit - 1}"
        else:
            path = "blocks/tip"
        return await self._get_block(path, params={"headeronly": "true"})

    async def check_connectivity(self) -> bool:
        """Check if the indexer is reachable. Single attempt, no backoff."""
        try:
            return await self._get_block("blocks/tip", params={"headeronly": "true"}, attempts=1) is not None
        except ChainReaderError:
            return False
