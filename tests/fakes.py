"""
In-memory collaborators for tracker tests.
"""

from typing import Optional, Sequence

from payin_tracker.indexer import BlockData
from payin_tracker.tracker import Currency, PaymentRecord

from builders import make_block_data


class FakeReader:
    """Serves blocks from a dict and records every fetch."""

    def __init__(self, blocks: dict[int, BlockData], tip_height: Optional[int] = None):
        self.blocks = blocks
        self.tip_height = tip_height if tip_height is not None else max(blocks, default=0)
        self.tip_available = True
        self.tip_error: Optional[Exception] = None
        self.height_calls: list[int] = []
        self.id_calls: list[str] = []
        self.tip_calls: list[int] = []

    async def get_block_by_height(self, height: int) -> Optional[BlockData]:
        self.height_calls.append(height)
        return self.blocks.get(height)

    async def get_block_by_id(self, block_id: str) -> Optional[BlockData]:
        self.id_calls.append(block_id)
        for block in self.blocks.values():
            if block.metadata.block_id == block_id:
                return block
        return None

    async def get_last_confirmed_block(self, confirmation_limit: int = 0) -> Optional[BlockData]:
        self.tip_calls.append(confirmation_limit)
        if self.tip_error is not None:
            raise self.tip_error
        if not self.tip_available:
            return None
        return make_block_data(self.tip_height)

    async def check_connectivity(self) -> bool:
        return self.tip_error is None and self.tip_available


class MemoryCheckpoints:
    def __init__(self, height: int = 0):
        self.height = height
        self.writes: list[int] = []

    def get(self) -> int:
        return self.height

    def set(self, height: int) -> None:
        self.writes.append(height)
        self.height = height


class MemoryAddresses:
    def __init__(self, owners: Optional[dict[str, str]] = None):
        self.owners = dict(owners or {})

    def lookup(self, currency: Currency, address: str) -> Optional[str]:
        return self.owners.get(address)


class RecordingSender:
    """Single-record delivery channel."""

    def __init__(self) -> None:
        self.records: list[PaymentRecord] = []

    async def send(self, record: PaymentRecord) -> None:
        self.records.append(record)


class RecordingBatchSender:
    """Batch delivery channel; keeps one entry per call."""

    def __init__(self, fail: bool = False) -> None:
        self.batches: list[list[PaymentRecord]] = []
        self.fail = fail

    async def send_all(self, records: Sequence[PaymentRecord]) -> int:
        if self.fail:
            raise RuntimeError("downstream unavailable")
        self.batches.append(list(records))
        return len(records)

    @property
    def records(self) -> list[PaymentRecord]:
        return [r for batch in self.batches for r in batch]
