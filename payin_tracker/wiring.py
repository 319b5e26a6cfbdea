"""
Construction of the tracker and its collaborators from settings.
"""

from dataclasses import dataclass
from typing import Union

import structlog

from .address import get_network
from .config import Settings
from .db import AddressRepository, CheckpointRepository, TrackerDatabase
from .delivery import HttpPaymentSink, LoggingPaymentSink
from .health import HealthService
from .indexer import ChainReader, ChainReaderConfig
from .scheduler import PeriodicTracker
from .tracker import TrackingSettings, TransactionTracker

logger = structlog.get_logger()


@dataclass
class TrackerServices:
    """Everything a running tracker needs, owned together for shutdown."""

    database: TrackerDatabase
    reader: ChainReader
    sink: Union[HttpPaymentSink, LoggingPaymentSink]
    addresses: AddressRepository
    checkpoints: CheckpointRepository
    tracker: TransactionTracker
    health: HealthService
    scheduler: PeriodicTracker

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.reader.close()
        await self.sink.close()
        self.database.close()


def create_services(settings: Settings) -> TrackerServices:
    """Build reader, stores, delivery channel and tracker from settings."""
    database = TrackerDatabase(settings.database_url)
    checkpoints = CheckpointRepository(database)
    addresses = AddressRepository(database, get_network(settings.btc_network))

    reader = ChainReader(
        ChainReaderConfig(
            base_url=settings.indexer_url,
            timeout=settings.request_timeout,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay,
            retry_max_delay=settings.retry_max_delay,
        )
    )

    sink: Union[HttpPaymentSink, LoggingPaymentSink]
    if settings.payments_url:
        sink = HttpPaymentSink(
            settings.payments_url,
            api_key=settings.payments_api_key,
            timeout=settings.request_timeout,
        )
    else:
        logger.warning("payments_url_not_set", hint="Detected payments are only logged")
        sink = LoggingPaymentSink()

    tracker = TransactionTracker(
        reader=reader,
        checkpoints=checkpoints,
        addresses=addresses,
        sender=sink,
        settings=TrackingSettings(
            confirmation_limit=settings.confirmation_limit,
            start_height=settings.start_height,
            network=settings.btc_network,
            explorer_url=settings.explorer_url,
        ),
    )
    health = HealthService()
    scheduler = PeriodicTracker(tracker, health, settings.poll_interval_seconds)

    return TrackerServices(
        database=database,
        reader=reader,
        sink=sink,
        addresses=addresses,
        checkpoints=checkpoints,
        tracker=tracker,
        health=health,
        scheduler=scheduler,
    )
