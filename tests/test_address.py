"""
Tests for Bitcoin address encoding and decoding.
"""

import pytest

from payin_tracker.address import (
    BECH32_CONST,
    MAINNET,
    REGTEST,
    TESTNET,
    address_to_script,
    base58check_decode,
    base58check_encode,
    canonical_address,
    bech32_decode,
    bech32_encode,
    convert_bits,
    decode_address,
    decode_segwit_address,
    get_network,
    script_to_address,
)

TAPROOT_PROGRAM = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
P2WSH_PROGRAM = "1863143c14c5166804bd19203356da136c985678cd4d27a1b8c6329604903262"


class TestNetworks:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("mainnet", MAINNET),
            ("main", MAINNET),
            ("TESTNET", TESTNET),
            ("testnet3", TESTNET),
            ("regtest", REGTEST),
        ],
    )
    def test_get_network(self, name, expected) -> None:
        assert get_network(name) == expected

    def test_unknown_network(self) -> None:
        with pytest.raises(ValueError):
            get_network("litecoin")


class TestBech32Decode:
    """Test Bech32 decoding."""

    def test_decode_testnet_p2wpkh(self) -> None:
        result = bech32_decode("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx")
        assert result is not None
        hrp, data, const = result
        assert hrp == "tb"
        assert data[0] == 0  # witness version
        assert const == BECH32_CONST

    def test_decode_invalid_checksum(self) -> None:
        # Last character changed
        assert bech32_decode("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t5") is None

    def test_decode_invalid_chars(self) -> None:
        assert bech32_decode("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3ti") is None

    def test_decode_mixed_case(self) -> None:
        assert bech32_decode("bc1qW508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4") is None


class TestSegwitAddresses:
    def test_taproot_address(self) -> None:
        address = "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0"
        result = decode_segwit_address("bc", address)
        assert result is not None
        version, program = result
        assert version == 1
        assert program.hex() == TAPROOT_PROGRAM

    def test_v1_with_bech32_checksum_is_rejected(self) -> None:
        data = [1] + convert_bits(list(bytes.fromhex(TAPROOT_PROGRAM)), 8, 5, True)
        address = bech32_encode("bc", data, BECH32_CONST)
        assert decode_segwit_address("bc", address) is None

    def test_wrong_hrp(self) -> None:
        assert decode_segwit_address("bc", "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx") is None


class TestBase58Check:
    def test_decode_mainnet_p2pkh(self) -> None:
        result = base58check_decode("1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa")
        assert result is not None
        version, payload = result
        assert version == 0x00
        assert payload.hex() == "62e907b15cbf27d5425399ebf6f0fb50ebb88f18"

    def test_encode_keeps_leading_zero_version(self) -> None:
        payload = bytes.fromhex("62e907b15cbf27d5425399ebf6f0fb50ebb88f18")
        assert base58check_encode(0x00, payload) == "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"

    def test_decode_invalid_checksum(self) -> None:
        assert base58check_decode("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN3") is None

    def test_decode_invalid_chars(self) -> None:
        assert base58check_decode("0OIl") is None


class TestDecodeAddress:
    """Test high-level address decoding."""

    @pytest.mark.parametrize(
        "address,network,expected_type",
        [
            ("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", MAINNET, "p2wpkh"),
            ("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", TESTNET, "p2wpkh"),
            ("bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3", MAINNET, "p2wsh"),
            ("bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0", MAINNET, "p2tr"),
            ("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2", MAINNET, "p2pkh"),
            ("mipcBbFg9gMiCh81Kj8tqqdgoZub1ZJRfn", TESTNET, "p2pkh"),
            ("3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy", MAINNET, "p2sh"),
        ],
    )
    def test_known_addresses(self, address, network, expected_type) -> None:
        result = decode_address(address, network)
        assert result is not None
        _, address_type = result
        assert address_type == expected_type

    def test_other_network_is_rejected(self) -> None:
        assert decode_address("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2", TESTNET) is None
        assert decode_address("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", MAINNET) is None

    def test_invalid_address(self) -> None:
        assert decode_address("notavalidaddress", MAINNET) is None

    def test_empty_address(self) -> None:
        assert decode_address("", MAINNET) is None


class TestScriptToAddress:
    def test_p2wpkh(self) -> None:
        script = bytes.fromhex("0014751e76e8199196d454941c45d1b3a323f1433bd6")
        assert script_to_address(script, TESTNET) == "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
        assert script_to_address(script, MAINNET) == "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"

    def test_p2wsh(self) -> None:
        script = bytes.fromhex("0020" + P2WSH_PROGRAM)
        assert (
            script_to_address(script, MAINNET)
            == "bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3"
        )

    def test_p2tr(self) -> None:
        script = bytes.fromhex("5120" + TAPROOT_PROGRAM)
        assert (
            script_to_address(script, MAINNET)
            == "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0"
        )

    def test_p2pkh(self) -> None:
        script = bytes.fromhex("76a914" + "62e907b15cbf27d5425399ebf6f0fb50ebb88f18" + "88ac")
        assert script_to_address(script, MAINNET) == "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"

    def test_nonstandard(self) -> None:
        assert script_to_address(b"\x6a\x04test", MAINNET) is None
        assert script_to_address(b"", MAINNET) is None

    @pytest.mark.parametrize(
        "address,network",
        [
            ("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", TESTNET),
            ("mipcBbFg9gMiCh81Kj8tqqdgoZub1ZJRfn", TESTNET),
            ("3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy", MAINNET),
            ("bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0", MAINNET),
        ],
    )
    def test_address_script_roundtrip(self, address, network) -> None:
        script = address_to_script(address, network)
        assert script is not None
        assert script_to_address(script, network) == address

    def test_canonical_address_lowercases_bech32(self) -> None:
        address = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
        assert canonical_address(address.upper(), TESTNET) == address
        assert canonical_address(f" {address} ", TESTNET) == address

    def test_canonical_address_keeps_base58(self) -> None:
        assert canonical_address("3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy", MAINNET) == "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy"

    def test_canonical_address_rejects_wrong_network(self) -> None:
        assert canonical_address("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", MAINNET) is None
