"""
CLI entry point for the pay-in tracker.
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import structlog
import typer
from dotenv import load_dotenv

from .config import Settings, get_settings
from .indexer import ChainReaderError
from .tracker import ChainTipUnavailableError, Currency
from .wiring import TrackerServices, create_services

T = TypeVar("T")

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="payin-tracker",
    help="Bitcoin pay-in transaction tracker",
    add_completion=False,
)

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to .env configuration file",
)


def _load_settings(config_path: Optional[Path]) -> Settings:
    if config_path:
        load_dotenv(config_path, override=True)
        get_settings.cache_clear()
    return get_settings()


def _run(settings: Settings, action: Callable[[TrackerServices], Awaitable[T]]) -> T:
    """
    Run `action` against freshly built services.

    Fatal tracking errors are printed and exit with status 1.
    """
    async def runner() -> T:
        services = create_services(settings)
        try:
            return await action(services)
        finally:
            await services.aclose()

    try:
        return asyncio.run(runner())
    except (ChainReaderError, ChainTipUnavailableError, httpx.HTTPError, ValueError) as e:
        # ValueError covers InvalidRangeError, MalformedBlockError and rejected addresses
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def serve(config_path: Optional[Path] = ConfigOption) -> None:
    """
    Start the admin API with periodic tracking.
    """
    _load_settings(config_path)

    from .main import run

    run()


@app.command()
def track(
    config_path: Optional[Path] = ConfigOption,
    loop: bool = typer.Option(
        False,
        "--loop",
        help="Keep tracking every POLL_INTERVAL_SECONDS until interrupted",
    ),
) -> None:
    """
    Process all confirmed blocks after the checkpoint.
    """
    settings = _load_settings(config_path)

    if loop:
        typer.echo("Running in continuous mode. Press Ctrl+C to stop.")
        try:
            _run(settings, lambda s: s.scheduler.run())
        except KeyboardInterrupt:
            typer.echo("\nStopping tracker...")
        return

    count = _run(settings, lambda s: s.tracker.track())
    typer.echo(f"Found {count} payments")


@app.command("scan-block")
def scan_block(
    config_path: Optional[Path] = ConfigOption,
    height: Optional[int] = typer.Option(None, "--height", min=0, help="Block height"),
    block_id: Optional[str] = typer.Option(None, "--id", help="Block hash"),
) -> None:
    """
    Process a single block without moving the checkpoint.
    """
    if (height is None) == (block_id is None):
        typer.echo("Error: pass exactly one of --height or --id", err=True)
        raise typer.Exit(1)

    settings = _load_settings(config_path)
    if height is not None:
        count = _run(settings, lambda s: s.tracker.process_block_by_height(height))
    else:
        count = _run(settings, lambda s: s.tracker.process_block_by_id(block_id))
    typer.echo(f"Found {count} payments")


@app.command("scan-range")
def scan_range(
    from_height: int = typer.Argument(..., min=0, help="First block height (inclusive)"),
    to_height: int = typer.Argument(..., min=0, help="Last block height (inclusive)"),
    config_path: Optional[Path] = ConfigOption,
    save_progress: bool = typer.Option(
        False,
        "--save-progress",
        help="Advance the checkpoint while scanning",
    ),
) -> None:
    """
    Process a range of blocks.
    """
    settings = _load_settings(config_path)
    count = _run(
        settings,
        lambda s: s.tracker.process_range(from_height, to_height, save_progress=save_progress),
    )
    typer.echo(f"Found {count} payments")


@app.command("reset-checkpoint")
def reset_checkpoint(
    height: int = typer.Argument(..., min=0, help="New last processed block height"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """
    Overwrite the last processed block height.
    """
    settings = _load_settings(config_path)
    previous = _run(settings, lambda s: s.tracker.reset_checkpoint(height))
    typer.echo(f"Checkpoint: {previous} -> {height}")


@app.command("add-address")
def add_address(
    address: str = typer.Argument(..., help="Bitcoin pay-in address"),
    owner: str = typer.Argument(..., help="Owner identity (e.g. user email)"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """
    Register a pay-in address for an owner.
    """
    settings = _load_settings(config_path)

    async def action(services: TrackerServices) -> tuple[str, int]:
        stored = services.addresses.add(Currency.BTC, address, owner)
        return stored, services.addresses.count(Currency.BTC)

    stored, count = _run(settings, action)
    typer.echo(f"Registered {stored} -> {owner} ({count} BTC addresses)")


@app.command("remove-address")
def remove_address(
    address: str = typer.Argument(..., help="Bitcoin pay-in address"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """
    Unregister a pay-in address.
    """
    settings = _load_settings(config_path)

    async def action(services: TrackerServices) -> bool:
        return services.addresses.remove(Currency.BTC, address)

    if not _run(settings, action):
        typer.echo(f"Not registered: {address}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Removed {address}")


@app.command()
def version() -> None:
    """Show the tracker version."""
    from payin_tracker import __version__
    typer.echo(f"payin-tracker v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
