"""
Bitcoin address encoding and decoding.

Supports:
- P2PKH / P2SH (base58check): 1.../3... (mainnet), m.../n.../2... (testnet)
- P2WPKH / P2WSH (bech32, witness v0): bc1q... / tb1q... / bcrt1q...
- P2TR (bech32m, witness v1): bc1p... / tb1p... / bcrt1p...
"""

import hashlib
from dataclasses import dataclass
from typing import Optional, Tuple

from .bitcoin import classify_script


@dataclass(frozen=True)
class Network:
    """Address parameters of a Bitcoin network."""

    name: str
    p2pkh_version: int
    p2sh_version: int
    bech32_hrp: str


MAINNET = Network(name="mainnet", p2pkh_version=0x00, p2sh_version=0x05, bech32_hrp="bc")
TESTNET = Network(name="testnet", p2pkh_version=0x6F, p2sh_version=0xC4, bech32_hrp="tb")
REGTEST = Network(name="regtest", p2pkh_version=0x6F, p2sh_version=0xC4, bech32_hrp="bcrt")

_NETWORKS = {
    "mainnet": MAINNET,
    "main": MAINNET,
    "testnet": TESTNET,
    "testnet3": TESTNET,
    "test": TESTNET,
    "regtest": REGTEST,
}


def get_network(name: str) -> Network:
    """Resolve a network by name (case-insensitive)."""
    try:
        return _NETWORKS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown Bitcoin network: {name!r}") from None


# Bech32 character set
BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"

# Checksum constants (BIP-173 / BIP-350)
BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3


def bech32_polymod(values: list[int]) -> int:
    """Internal function for Bech32 checksum computation."""
    GEN = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for v in values:
        b = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ v
        for i in range(5):
            chk ^= GEN[i] if ((b >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    """Expand HRP for checksum computation."""
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32_create_checksum(hrp: str, data: list[int], const: int) -> list[int]:
    """Compute the 6-character checksum for `data`."""
    values = bech32_hrp_expand(hrp) + data
    polymod = bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ const
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32_encode(hrp: str, data: list[int], const: int) -> str:
    """Encode HRP and 5-bit data into a Bech32/Bech32m string."""
    combined = data + bech32_create_checksum(hrp, data, const)
    return hrp + "1" + "".join(BECH32_CHARSET[d] for d in combined)


def bech32_decode(address: str) -> Tuple[str, list[int], int] | None:
    """
    Decode a Bech32/Bech32m string.

    Returns:
        (hrp, data, const) where data is the 5-bit payload without checksum
        and const tells which checksum variant matched, or None if invalid
    """
    # Mixed case is invalid
    if address.lower() != address and address.upper() != address:
        return None
    address = address.lower()

    pos = address.rfind("1")
    if pos < 1 or pos + 7 > len(address) or len(address) > 90:
        return None

    hrp = address[:pos]
    if any(ord(x) < 33 or ord(x) > 126 for x in hrp):
        return None

    data = []
    for c in address[pos + 1:]:
        if c not in BECH32_CHARSET:
            return None
        data.append(BECH32_CHARSET.index(c))

    const = bech32_polymod(bech32_hrp_expand(hrp) + data)
    if const not in (BECH32_CONST, BECH32M_CONST):
        return None

    return hrp, data[:-6], const


def convert_bits(data: list[int], frombits: int, tobits: int, pad: bool) -> list[int] | None:
    """Convert between bit widths."""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1

    for value in data:
        if value < 0 or (value >> frombits):
            return None
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)

    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        return None

    return ret


def encode_segwit_address(hrp: str, witness_version: int, program: bytes) -> Optional[str]:
    """Encode a witness program as a segwit address."""
    if not 0 <= witness_version <= 16 or not 2 <= len(program) <= 40:
        return None
    if witness_version == 0 and len(program) not in (20, 32):
        return None
    const = BECH32_CONST if witness_version == 0 else BECH32M_CONST
    five_bit = convert_bits(list(program), 8, 5, True)
    if five_bit is None:
        return None
    return bech32_encode(hrp, [witness_version] + five_bit, const)


def decode_segwit_address(hrp: str, address: str) -> Tuple[int, bytes] | None:
    """
    Decode a segwit address for the expected HRP.

    Returns:
        (witness_version, program) or None if invalid
    """
    result = bech32_decode(address)
    if result is None:
        return None

    decoded_hrp, data, const = result
    if decoded_hrp != hrp or len(data) < 1:
        return None

    version = data[0]
    if version > 16:
        return None

    # v0 uses bech32, v1+ uses bech32m (BIP-350)
    if (version == 0) != (const == BECH32_CONST):
        return None

    program = convert_bits(data[1:], 5, 8, False)
    if program is None or not 2 <= len(program) <= 40:
        return None

    # Version 0 requires 20 or 32 byte programs
    if version == 0 and len(program) not in (20, 32):
        return None

    return version, bytes(program)


# Base58 character set
BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(data: bytes) -> str:
    """Encode bytes as a Base58 string."""
    num = int.from_bytes(data, "big")
    chars = []
    while num > 0:
        num, rem = divmod(num, 58)
        chars.append(BASE58_ALPHABET[rem])

    # Leading zero bytes map to '1'
    pad_size = len(data) - len(data.lstrip(b"\x00"))
    return "1" * pad_size + "".join(reversed(chars))


def base58_decode(s: str) -> bytes | None:
    """Decode a Base58 string."""
    num = 0
    for c in s:
        if c not in BASE58_ALPHABET:
            return None
        num = num * 58 + BASE58_ALPHABET.index(c)

    result = []
    while num > 0:
        result.append(num & 0xFF)
        num >>= 8
    decoded = bytes(reversed(result))

    pad_size = len(s) - len(s.lstrip("1"))
    return b"\x00" * pad_size + decoded


def _checksum(payload: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(payload).digest()).digest()[:4]


def base58check_encode(version: int, payload: bytes) -> str:
    """Encode a version byte and payload as Base58Check."""
    data = bytes([version]) + payload
    return base58_encode(data + _checksum(data))


def base58check_decode(s: str) -> Tuple[int, bytes] | None:
    """
    Decode a Base58Check encoded string.

    Returns:
        (version, payload) or None if invalid
    """
    data = base58_decode(s)
    if data is None or len(data) < 5:
        return None

    checksum = data[-4:]
    payload = data[:-4]
    if checksum != _checksum(payload):
        return None

    return (payload[0], payload[1:])


def script_to_address(script_pubkey: bytes, network: Network) -> Optional[str]:
    """
    Derive the destination address of an output script.

    Returns None for scripts that do not match a standard address
    template (P2PK, bare multisig, OP_RETURN, non-standard).
    """
    payload, script_type = classify_script(script_pubkey)
    if payload is None:
        return None

    if script_type == "p2pkh":
        return base58check_encode(network.p2pkh_version, payload)
    if script_type == "p2sh":
        return base58check_encode(network.p2sh_version, payload)
    if script_type in ("p2wpkh", "p2wsh"):
        return encode_segwit_address(network.bech32_hrp, 0, payload)
    if script_type == "p2tr":
        return encode_segwit_address(network.bech32_hrp, 1, payload)

    return None


def decode_address(address: str, network: Network) -> Tuple[bytes, str] | None:
    """
    Decode an address of the given network.

    Returns:
        (payload, address_type) where address_type is one of "p2pkh",
        "p2sh", "p2wpkh", "p2wsh", "p2tr", or None if the address is
        invalid, unsupported or belongs to another network
    """
    if not address:
        return None

    if address.lower().startswith(network.bech32_hrp + "1"):
        result = decode_segwit_address(network.bech32_hrp, address)
        if result is None:
            return None

        version, program = result
        if version == 0 and len(program) == 20:
            return (program, "p2wpkh")
        if version == 0 and len(program) == 32:
            return (program, "p2wsh")
        if version == 1 and len(program) == 32:
            return (program, "p2tr")
        return None

    decoded = base58check_decode(address)
    if decoded is None:
        return None

    version, payload = decoded
    if len(payload) != 20:
        return None
    if version == network.p2pkh_version:
        return (payload, "p2pkh")
    if version == network.p2sh_version:
        return (payload, "p2sh")

    return None


def address_to_script(address: str, network: Network) -> Optional[bytes]:
    """Build the output script paying to `address`, or None if invalid."""
    decoded = decode_address(address, network)
    if decoded is None:
        return None

    payload, address_type = decoded
    if address_type == "p2pkh":
        return b"\x76\xa9\x14" + payload + b"\x88\xac"
    if address_type == "p2sh":
        return b"\xa9\x14" + payload + b"\x87"
    if address_type in ("p2wpkh", "p2wsh"):
        return bytes([0x00, len(payload)]) + payload
    # p2tr
    return bytes([0x51, len(payload)]) + payload


def canonical_address(address: str, network: Network) -> Optional[str]:
    """
    Normalize an address to the form `script_to_address` produces
    (lowercase bech32), or None if it is not valid for `network`.
    """
    script = address_to_script(address.strip(), network)
    if script is None:
        return None
    return script_to_address(script, network)
