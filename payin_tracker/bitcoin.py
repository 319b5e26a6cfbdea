"""
Bitcoin wire-format parsing for block scanning.

Parses serialized blocks (as returned by the indexer) into transactions
and outputs, and classifies output scripts into standard templates.
"""

import hashlib
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

# Constants for BTC to satoshis conversion
SATS_PER_BTC = Decimal("100000000")
BTC_PRECISION = Decimal("0.00000001")

HEADER_SIZE = 80


class MalformedBlockError(ValueError):
    """Serialized block bytes could not be parsed."""


def sha256d(data: bytes) -> bytes:
    """Double SHA256 hash (Bitcoin standard)."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def reverse_bytes(data: bytes) -> bytes:
    """Reverse byte order (for Bitcoin little-endian display)."""
    return data[::-1]


def bytes_to_hex_le(data: bytes) -> str:
    """Convert bytes to hex string in little-endian display format."""
    return reverse_bytes(data).hex()


def sats_to_btc(sats: int) -> Decimal:
    """
    Convert satoshis to a BTC Decimal with 8 decimal places.

    Examples:
        >>> sats_to_btc(1)
        Decimal('1E-8')
        >>> str(sats_to_btc(150000000))
        '1.50000000'
    """
    return (Decimal(sats) / SATS_PER_BTC).quantize(BTC_PRECISION)


@dataclass
class BlockHeader:
    """Bitcoin block header (80 bytes)."""

    version: int
    prev_block_hash: bytes  # 32 bytes, internal byte order
    merkle_root: bytes  # 32 bytes, internal byte order
    timestamp: int
    bits: int
    nonce: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "BlockHeader":
        """Parse 80-byte header."""
        if len(data) != HEADER_SIZE:
            raise MalformedBlockError(f"Header must be 80 bytes, got {len(data)}")

        return cls(
            version=int.from_bytes(data[0:4], "little"),
            prev_block_hash=data[4:36],
            merkle_root=data[36:68],
            timestamp=int.from_bytes(data[68:72], "little"),
            bits=int.from_bytes(data[72:76], "little"),
            nonce=int.from_bytes(data[76:80], "little"),
        )

    def to_bytes(self) -> bytes:
        """Serialize to 80 bytes."""
        return (
            self.version.to_bytes(4, "little")
            + self.prev_block_hash
            + self.merkle_root
            + self.timestamp.to_bytes(4, "little")
            + self.bits.to_bytes(4, "little")
            + self.nonce.to_bytes(4, "little")
        )

    def block_hash(self) -> bytes:
        """Calculate block hash (internal byte order)."""
        return sha256d(self.to_bytes())

    def block_hash_hex(self) -> str:
        """Block hash in display format (reversed, hex)."""
        return bytes_to_hex_le(self.block_hash())


@dataclass
class TxInput:
    """Bitcoin transaction input (previous outpoint only)."""

    prev_txid: str  # display format
    prev_index: int


@dataclass
class TxOutput:
    """Bitcoin transaction output."""

    index: int
    value: int  # satoshis
    script_pubkey: bytes


@dataclass
class Transaction:
    """Parsed Bitcoin transaction."""

    txid: str  # display format
    inputs: List[TxInput] = field(default_factory=list)
    outputs: List[TxOutput] = field(default_factory=list)


@dataclass
class Block:
    """Parsed Bitcoin block."""

    header: BlockHeader
    transactions: List[Transaction]


def _take(data: bytes, offset: int, size: int) -> Tuple[bytes, int]:
    """Slice `size` bytes at `offset`, failing on truncated input."""
    end = offset + size
    if size < 0 or end > len(data):
        raise MalformedBlockError(
            f"Unexpected end of data: need {size} bytes at offset {offset}, have {len(data) - offset}"
        )
    return data[offset:end], end


def parse_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Parse Bitcoin VarInt.
    Returns (value, new_offset).
    """
    prefix, offset = _take(data, offset, 1)
    first = prefix[0]
    if first < 0xFD:
        return first, offset
    elif first == 0xFD:
        size = 2
    elif first == 0xFE:
        size = 4
    else:
        size = 8
    raw, offset = _take(data, offset, size)
    return int.from_bytes(raw, "little"), offset


def parse_transaction(data: bytes, offset: int = 0) -> Tuple[Transaction, int]:
    """
    Parse one transaction starting at `offset`.

    Handles both legacy and segwit serialization. The txid is computed
    over the non-witness serialization.

    Returns (transaction, new_offset).
    """
    start = offset
    _, offset = _take(data, offset, 4)  # version

    has_witness = False
    if offset + 1 < len(data) and data[offset] == 0x00 and data[offset + 1] == 0x01:
        has_witness = True
        offset += 2  # marker + flag

    body_start = offset

    inputs: List[TxInput] = []
    input_count, offset = parse_varint(data, offset)
    for _ in range(input_count):
        prev_hash, offset = _take(data, offset, 32)
        prev_index, offset = _take(data, offset, 4)
        script_len, offset = parse_varint(data, offset)
        _, offset = _take(data, offset, script_len)
        _, offset = _take(data, offset, 4)  # sequence
        inputs.append(
            TxInput(
                prev_txid=bytes_to_hex_le(prev_hash),
                prev_index=int.from_bytes(prev_index, "little"),
            )
        )

    outputs: List[TxOutput] = []
    output_count, offset = parse_varint(data, offset)
    for index in range(output_count):
        value, offset = _take(data, offset, 8)
        script_len, offset = parse_varint(data, offset)
        script_pubkey, offset = _take(data, offset, script_len)
        outputs.append(
            TxOutput(
                index=index,
                value=int.from_bytes(value, "little"),
                script_pubkey=script_pubkey,
            )
        )

    body_end = offset

    if has_witness:
        for _ in range(input_count):
            item_count, offset = parse_varint(data, offset)
            for _ in range(item_count):
                item_len, offset = parse_varint(data, offset)
                _, offset = _take(data, offset, item_len)

    locktime, offset = _take(data, offset, 4)

    stripped = data[start : start + 4] + data[body_start:body_end] + locktime
    txid = bytes_to_hex_le(sha256d(stripped))

    return Transaction(txid=txid, inputs=inputs, outputs=outputs), offset


def parse_block(raw_block: bytes) -> Block:
    """
    Parse a serialized block into its header and transactions.

    Raises:
        MalformedBlockError: if the bytes are truncated, carry trailing
            data, or contain no transactions
    """
    header_bytes, offset = _take(raw_block, 0, HEADER_SIZE)
    header = BlockHeader.from_bytes(header_bytes)

    tx_count, offset = parse_varint(raw_block, offset)
    if tx_count == 0:
        raise MalformedBlockError("Block contains no transactions")

    transactions: List[Transaction] = []
    for _ in range(tx_count):
        tx, offset = parse_transaction(raw_block, offset)
        transactions.append(tx)

    if offset != len(raw_block):
        raise MalformedBlockError(
            f"Unexpected trailing data: {len(raw_block) - offset} bytes after last transaction"
        )

    return Block(header=header, transactions=transactions)


def classify_script(script_pubkey: bytes) -> Tuple[Optional[bytes], str]:
    """
    Match scriptPubKey against the standard address templates.

    Returns:
        (payload, script_type) where script_type is one of "p2pkh", "p2sh",
        "p2wpkh", "p2wsh", "p2tr" and payload is the hash or witness
        program; (None, "unknown") for anything else
    """
    size = len(script_pubkey)

    # P2PKH: OP_DUP OP_HASH160 <20 bytes> OP_EQUALVERIFY OP_CHECKSIG
    if (
        size == 25
        and script_pubkey[0] == 0x76
        and script_pubkey[1] == 0xA9
        and script_pubkey[2] == 0x14
        and script_pubkey[23] == 0x88
        and script_pubkey[24] == 0xAC
    ):
        return script_pubkey[3:23], "p2pkh"

    # P2SH: OP_HASH160 <20 bytes> OP_EQUAL
    if size == 23 and script_pubkey[0] == 0xA9 and script_pubkey[1] == 0x14 and script_pubkey[22] == 0x87:
        return script_pubkey[2:22], "p2sh"

    # P2WPKH: OP_0 <20 bytes>
    if size == 22 and script_pubkey[0] == 0x00 and script_pubkey[1] == 0x14:
        return script_pubkey[2:22], "p2wpkh"

    # P2WSH: OP_0 <32 bytes>
    if size == 34 and script_pubkey[0] == 0x00 and script_pubkey[1] == 0x20:
        return script_pubkey[2:34], "p2wsh"

    # P2TR: OP_1 <32 bytes>
    if size == 34 and script_pubkey[0] == 0x51 and script_pubkey[1] == 0x20:
        return script_pubkey[2:34], "p2tr"

    return None, "unknown"
