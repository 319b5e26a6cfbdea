"""
Pay-in transaction tracking.

Walks confirmed blocks in height order, extracts outputs paying to
registered pay-in addresses and hands them to the delivery channel,
checkpointing after every block so a failed run resumes at the block
in flight.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Optional, Protocol, Sequence, Union, runtime_checkable

import structlog

from .address import get_network, script_to_address
from .bitcoin import Block, parse_block, sats_to_btc
from .indexer import BlockData

logger = structlog.get_logger()


class Currency(str, Enum):
    BTC = "BTC"


class ChainTipUnavailableError(Exception):
    """The indexer did not return the last confirmed block."""


class InvalidRangeError(ValueError):
    """Scan range bounds are reversed."""


@dataclass(frozen=True)
class PaymentRecord:
    """An incoming payment to a registered pay-in address."""

    owner_identity: str
    unique_id: str  # outpoint: "<txid>-<vout>"
    currency: Currency
    transaction_hash: str
    block_id: str
    block_timestamp: datetime
    pay_in_address: str
    amount: Decimal
    explorer_link: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner_identity": self.owner_identity,
            "unique_id": self.unique_id,
            "currency": self.currency.value,
            "transaction_hash": self.transaction_hash,
            "block_id": self.block_id,
            "block_timestamp": self.block_timestamp.isoformat(),
            "pay_in_address": self.pay_in_address,
            "amount": str(self.amount),
            "explorer_link": self.explorer_link,
        }


def outpoint_id(txid: str, output_index: int) -> str:
    """Unique reference of a transaction output."""
    return f"{txid}-{output_index}"


class CheckpointStore(Protocol):
    """Persisted height of the last fully processed block."""

    def get(self) -> int: ...
    def set(self, height: int) -> None: ...


class AddressLookup(Protocol):
    """Maps pay-in addresses to their owners."""

    def lookup(self, currency: Currency, address: str) -> Optional[str]: ...


@runtime_checkable
class PaymentSender(Protocol):
    """Delivery channel accepting one record at a time."""

    async def send(self, record: PaymentRecord) -> None: ...


@runtime_checkable
class BatchPaymentSender(Protocol):
    """Delivery channel accepting all records of a block at once."""

    async def send_all(self, records: Sequence[PaymentRecord]) -> int: ...


class BlockSource(Protocol):
    """Protocol for the block reader (real or fake)."""

    async def get_block_by_height(self, height: int) -> Optional[BlockData]: ...
    async def get_block_by_id(self, block_id: str) -> Optional[BlockData]: ...
    async def get_last_confirmed_block(self, confirmation_limit: int = 0) -> Optional[BlockData]: ...
    async def check_connectivity(self) -> bool: ...


@dataclass
class TrackingSettings:
    """Tracking parameters."""

    confirmation_limit: int = 0
    start_height: int = 0
    network: str = "testnet"
    explorer_url: str = ""


class TransactionTracker:
    """
    Tracks confirmed blocks for payments to registered addresses.

    Only one run that writes the checkpoint executes at a time: an
    overlapping `track()` returns immediately and a saving
    `process_range()` waits for the running one to finish.
    """

    def __init__(
        self,
        reader: BlockSource,
        checkpoints: CheckpointStore,
        addresses: AddressLookup,
        sender: Union[PaymentSender, BatchPaymentSender],
        settings: TrackingSettings,
    ):
        self.reader = reader
        self.checkpoints = checkpoints
        self.addresses = addresses
        self.sender = sender
        self.settings = settings
        self.network = get_network(settings.network)
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def track(self) -> int:
        """
        Process all confirmed blocks after the checkpoint.

        Returns the number of payments found.

        Raises:
            ChainTipUnavailableError: if the last confirmed block is unknown
        """
        if self._lock.locked():
            logger.warning("tracking_already_running")
            return 0

        async with self._lock:
            tip = await self.reader.get_last_confirmed_block(self.settings.confirmation_limit)
            if tip is None:
                raise ChainTipUnavailableError("Cannot determine last confirmed block")

            last_processed = self.checkpoints.get()
            start = max(last_processed, self.settings.start_height)
            tip_height = tip.metadata.height

            if start >= tip_height:
                logger.info(
                    "no_new_data",
                    last_processed=last_processed,
                    last_confirmed=tip_height,
                )
                return 0

            count = await self._scan_range(start + 1, tip_height, checkpoint=last_processed)

            logger.info(
                "tracking_completed",
                network=self.network.name,
                from_height=start + 1,
                to_height=tip_height,
                count=count,
            )
            return count

    async def process_range(self, from_height: int, to_height: int, save_progress: bool = True) -> int:
        """
        Process blocks `from_height`..`to_height` inclusive.

        With `save_progress` the checkpoint advances after each block
        (never below its current value); without it the checkpoint is
        left untouched, which makes the call safe for re-scans.
        """
        if from_height > to_height:
            raise InvalidRangeError(
                f"Invalid range: from_height {from_height} is greater than to_height {to_height}"
            )

        if not save_progress:
            return await self._scan_range(from_height, to_height)

        async with self._lock:
            return await self._scan_range(from_height, to_height, checkpoint=self.checkpoints.get())

    async def _scan_range(self, from_height: int, to_height: int, checkpoint: Optional[int] = None) -> int:
        """Scan heights in ascending order; checkpoint after each block unless `checkpoint` is None."""
        total = 0
        for height in range(from_height, to_height + 1):
            total += await self.process_block_by_height(height)

            if checkpoint is not None and height > checkpoint:
                self.checkpoints.set(height)
                checkpoint = height
        return total

    async def process_block_by_height(self, height: int) -> int:
        """Process a single block by height. Does not touch the checkpoint."""
        block = await self.reader.get_block_by_height(height)
        if block is None:
            logger.warning("block_unavailable", height=height)
            return 0
        return await self.process_block(block)

    async def process_block_by_id(self, block_id: str) -> int:
        """Process a single block by hash. Does not touch the checkpoint."""
        block = await self.reader.get_block_by_id(block_id)
        if block is None:
            logger.warning("block_unavailable", block_id=block_id)
            return 0
        return await self.process_block(block)

    async def process_block(self, block: BlockData) -> int:
        """
        Extract and deliver payments from a fetched block.

        Raises:
            MalformedBlockError: if the block bytes cannot be parsed
        """
        metadata = block.metadata
        if metadata.confirmations < self.settings.confirmation_limit:
            logger.info(
                "block_not_confirmed",
                height=metadata.height,
                block_id=metadata.block_id,
                confirmations=metadata.confirmations,
                confirmation_limit=self.settings.confirmation_limit,
            )
            return 0

        parsed = parse_block(block.raw_block)
        block_hash = parsed.header.block_hash_hex()
        if block_hash != metadata.block_id.lower():
            logger.warning(
                "block_id_mismatch",
                height=metadata.height,
                block_id=metadata.block_id,
                header_hash=block_hash,
            )

        records = list(self._extract_payments(block, parsed))

        if records:
            await self._deliver(records)

        logger.info(
            "block_processed",
            network=self.network.name,
            height=metadata.height,
            block_id=metadata.block_id,
            count=len(records),
        )
        return len(records)

    def _extract_payments(self, block: BlockData, parsed: Block) -> Iterator[PaymentRecord]:
        metadata = block.metadata
        for tx in parsed.transactions:
            for output in tx.outputs:
                if output.value <= 0 or not output.script_pubkey:
                    continue

                address = script_to_address(output.script_pubkey, self.network)
                if address is None:
                    continue

                owner = self.addresses.lookup(Currency.BTC, address)
                if owner is None:
                    continue

                yield PaymentRecord(
                    owner_identity=owner,
                    unique_id=outpoint_id(tx.txid, output.index),
                    currency=Currency.BTC,
                    transaction_hash=tx.txid,
                    block_id=metadata.block_id,
                    block_timestamp=metadata.block_time,
                    pay_in_address=address,
                    amount=sats_to_btc(output.value),
                    explorer_link=self._explorer_link(tx.txid),
                )

    def _explorer_link(self, txid: str) -> str:
        return f"{self.settings.explorer_url.rstrip('/')}/{txid}"

    async def _deliver(self, records: list[PaymentRecord]) -> None:
        if isinstance(self.sender, BatchPaymentSender):
            await self.sender.send_all(records)
        else:
            for record in records:
                await self.sender.send(record)

    async def reset_checkpoint(self, height: int) -> int:
        """
        Set the checkpoint to `height` (operator override, may rewind).

        Returns the previous checkpoint.
        """
        if height < 0:
            raise ValueError(f"Height must be non-negative, got {height}")

        async with self._lock:
            previous = self.checkpoints.get()
            self.checkpoints.set(height)

        logger.warning("checkpoint_reset", previous=previous, height=height)
        return previous
