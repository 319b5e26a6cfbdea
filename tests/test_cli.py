"""
Tests for the command line interface.
"""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from payin_tracker import __version__
from payin_tracker.cli import app
from payin_tracker.config import get_settings
from payin_tracker.db import AddressRepository, CheckpointRepository, TrackerDatabase
from payin_tracker.indexer import ChainReader, ChainReaderError
from payin_tracker.tracker import Currency

from builders import ALICE_ADDRESS, make_block_data

runner = CliRunner()


@pytest.fixture
def database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("BTC_NETWORK", "testnet")
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_add_address(database_url: str) -> None:
    result = runner.invoke(app, ["add-address", ALICE_ADDRESS, "alice@example.com"])
    assert result.exit_code == 0, result.output

    db = TrackerDatabase(database_url)
    assert AddressRepository(db).lookup(Currency.BTC, ALICE_ADDRESS) == "alice@example.com"
    db.close()


def test_add_address_rejects_other_network(database_url: str) -> None:
    result = runner.invoke(app, ["add-address", "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", "alice"])
    assert result.exit_code == 1


def test_remove_unknown_address(database_url: str) -> None:
    result = runner.invoke(app, ["remove-address", ALICE_ADDRESS])
    assert result.exit_code == 1


def test_reset_checkpoint(database_url: str) -> None:
    result = runner.invoke(app, ["reset-checkpoint", "1234"])
    assert result.exit_code == 0, result.output
    assert "0 -> 1234" in result.output

    db = TrackerDatabase(database_url)
    assert CheckpointRepository(db).get() == 1234
    db.close()


def test_scan_range_rejects_reversed_bounds(database_url: str) -> None:
    result = runner.invoke(app, ["scan-range", "5", "4"])
    assert result.exit_code == 1


def test_scan_block_requires_one_selector() -> None:
    result = runner.invoke(app, ["scan-block"])
    assert result.exit_code == 1


def test_add_address_stores_lowercase_bech32(database_url: str) -> None:
    result = runner.invoke(app, ["add-address", ALICE_ADDRESS.upper(), "alice"])
    assert result.exit_code == 0, result.output
    assert f"Registered {ALICE_ADDRESS} -> alice (1 BTC addresses)" in result.output

    db = TrackerDatabase(database_url)
    assert AddressRepository(db).lookup(Currency.BTC, ALICE_ADDRESS) == "alice"
    db.close()


def test_remove_address_accepts_uppercase(database_url: str) -> None:
    runner.invoke(app, ["add-address", ALICE_ADDRESS, "alice"])

    result = runner.invoke(app, ["remove-address", ALICE_ADDRESS.upper()])
    assert result.exit_code == 0, result.output

    db = TrackerDatabase(database_url)
    assert AddressRepository(db).lookup(Currency.BTC, ALICE_ADDRESS) is None
    db.close()


def test_scan_block_indexer_failure_exits_1(database_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
    async def failing(self, height: int):
        raise ChainReaderError("Indexer returned HTTP 503 for blocks/7", status_code=503)

    monkeypatch.setattr(ChainReader, "get_block_by_height", failing)

    result = runner.invoke(app, ["scan-block", "--height", "7"])
    assert result.exit_code == 1
    assert "HTTP 503" in result.output
    assert not isinstance(result.exception, ChainReaderError)


def test_scan_range_malformed_block_exits_1(database_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
    async def truncated(self, height: int):
        return make_block_data(height, b"\x00" * 10)

    monkeypatch.setattr(ChainReader, "get_block_by_height", truncated)

    result = runner.invoke(app, ["scan-range", "1", "2"])
    assert result.exit_code == 1
    assert "Error:" in result.output
