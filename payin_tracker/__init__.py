"""
BTC Pay-in Tracker

Scans confirmed Bitcoin blocks from a QBitNinja-compatible indexer for
outputs paying to registered pay-in addresses and delivers one payment
record per matching output.

Usage:
    # Register an address
    payin-tracker add-address tb1q... alice@example.com

    # Track once / continuously
    payin-tracker track
    payin-tracker track --loop

    # Admin API with periodic tracking
    payin-tracker serve
"""

__version__ = "0.1.0"

from .indexer import BlockData, BlockMetadata, ChainReader, ChainReaderConfig, ChainReaderError
from .tracker import (
    ChainTipUnavailableError,
    Currency,
    InvalidRangeError,
    PaymentRecord,
    TrackingSettings,
    TransactionTracker,
)
from .bitcoin import MalformedBlockError

__all__ = [
    "__version__",
    "BlockData",
    "BlockMetadata",
    "ChainReader",
    "ChainReaderConfig",
    "ChainReaderError",
    "ChainTipUnavailableError",
    "Currency",
    "InvalidRangeError",
    "MalformedBlockError",
    "PaymentRecord",
    "TrackingSettings",
    "TransactionTracker",
]
