"""
Pay-in tracker service - periodic tracking plus an admin API.

Provides REST endpoints for:
- Health checks (GET /health)
- Processing a single block (POST /api/scan/block)
- Re-scanning a block range (POST /api/scan/range)
- Resetting the checkpoint (POST /api/checkpoint/reset)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
import uvicorn
from fastapi import Depends, FastAPI, HTTPException

from . import __version__
from .auth import verify_api_token
from .bitcoin import MalformedBlockError
from .config import get_settings
from .health import HealthService
from .indexer import ChainReaderError
from .models import (
    HealthResponse,
    ResetCheckpointRequest,
    ResetCheckpointResponse,
    ScanBlockRequest,
    ScanRangeRequest,
    ScanResponse,
)
from .tracker import ChainTipUnavailableError, InvalidRangeError, TransactionTracker
from .wiring import TrackerServices, create_services

# Configure logging
logging.basicConfig(format="%(message)s", stream=sys.stdout, level=logging.INFO)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


# Global services (initialized at startup)
_services: Optional[TrackerServices] = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    global _services

    settings = get_settings()
    _services = create_services(settings)

    if settings.tracking_enabled:
        _services.scheduler.start()

    logger.info(
        "service_started",
        version=__version__,
        host=settings.host,
        port=settings.port,
        network=settings.btc_network,
        indexer=settings.indexer_url,
        confirmation_limit=settings.confirmation_limit,
        tracking_enabled=settings.tracking_enabled,
    )

    yield

    if _services:
        await _services.aclose()
        _services = None

    logger.info("service_stopped")


app = FastAPI(
    title="BTC Pay-in Tracker",
    description="Detects incoming payments to registered Bitcoin pay-in addresses",
    version=__version__,
    lifespan=lifespan,
)


def get_tracker() -> TransactionTracker:
    if _services is None:
        raise HTTPException(status_code=503, detail="Tracker not initialized")
    return _services.tracker


def get_health() -> HealthService:
    if _services is None:
        raise HTTPException(status_code=503, detail="Tracker not initialized")
    return _services.health


def _upstream_error(e: Exception) -> HTTPException:
    logger.error("indexer_unavailable", error=str(e))
    return HTTPException(status_code=502, detail=str(e))


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health", response_model=HealthResponse)
async def health_check(
    tracker: TransactionTracker = Depends(get_tracker),
    health: HealthService = Depends(get_health),
) -> HealthResponse:
    """
    Check service health and indexer connectivity.

    Status is "critical" after repeated tracking failures and
    "degraded" when the indexer is unreachable.
    """
    indexer_ok = await tracker.reader.check_connectivity()
    violation = health.health_violation()

    if violation:
        status = "critical"
    elif not indexer_ok:
        status = "degraded"
    else:
        status = "ok"

    return HealthResponse(
        status=status,
        version=__version__,
        indexer=indexer_ok,
        tracking_running=tracker.is_running,
        last_processed_height=tracker.checkpoints.get(),
        violation=violation,
        stats=health.snapshot(),
    )


# ============================================================================
# Scanning
# ============================================================================


@app.post(
    "/api/scan/block",
    response_model=ScanResponse,
    dependencies=[Depends(verify_api_token)],
)
async def scan_block(
    request: ScanBlockRequest,
    tracker: TransactionTracker = Depends(get_tracker),
) -> ScanResponse:
    """
    Process a single block by height or id.

    The checkpoint is not changed.
    """
    if request.height is None and not request.block_id:
        raise HTTPException(status_code=400, detail="Either height or id is required")

    try:
        if request.height is not None:
            count = await tracker.process_block_by_height(request.height)
        else:
            count = await tracker.process_block_by_id(request.block_id)
    except ChainReaderError as e:
        raise _upstream_error(e) from e
    except MalformedBlockError as e:
        logger.error("block_malformed", height=request.height, block_id=request.block_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Malformed block: {e}") from e

    return ScanResponse(count=count)


@app.post(
    "/api/scan/range",
    response_model=ScanResponse,
    dependencies=[Depends(verify_api_token)],
)
async def scan_range(
    request: ScanRangeRequest,
    tracker: TransactionTracker = Depends(get_tracker),
) -> ScanResponse:
    """
    Re-scan blocks `from_height`..`to_height` inclusive.

    The checkpoint is not changed.
    """
    try:
        count = await tracker.process_range(request.from_height, request.to_height, save_progress=False)
    except InvalidRangeError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except (ChainReaderError, ChainTipUnavailableError) as e:
        raise _upstream_error(e) from e
    except MalformedBlockError as e:
        logger.error("block_malformed", error=str(e))
        raise HTTPException(status_code=500, detail=f"Malformed block: {e}") from e

    return ScanResponse(count=count)


# ============================================================================
# Checkpoint Management
# ============================================================================


@app.post(
    "/api/checkpoint/reset",
    response_model=ResetCheckpointResponse,
    dependencies=[Depends(verify_api_token)],
)
async def reset_checkpoint(
    request: ResetCheckpointRequest,
    tracker: TransactionTracker = Depends(get_tracker),
) -> ResetCheckpointResponse:
    """Overwrite the last processed block height; tracking resumes after it."""
    previous = await tracker.reset_checkpoint(request.height)
    return ResetCheckpointResponse(height=request.height, previous_height=previous)


# ============================================================================
# Entry Point
# ============================================================================


def run() -> None:
    """Run the service."""
    settings = get_settings()
    uvicorn.run(
        "payin_tracker.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
