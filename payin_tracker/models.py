"""
Pydantic models for admin API requests and responses.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Scanning
# ============================================================================

class ScanBlockRequest(BaseModel):
    """Request to process a single block, by height or by id."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"examples": [{"height": 2500000}, {"id": "000000000000001a..."}]},
    )

    height: Optional[int] = Field(None, ge=0, description="Block height")
    block_id: Optional[str] = Field(None, alias="id", min_length=1, description="Block hash")


class ScanRangeRequest(BaseModel):
    """Request to re-scan a range of blocks without moving the checkpoint."""

    from_height: int = Field(..., ge=0, description="First block height (inclusive)")
    to_height: int = Field(..., ge=0, description="Last block height (inclusive)")

    model_config = {
        "json_schema_extra": {
            "examples": [{"from_height": 2500000, "to_height": 2500010}]
        }
    }


class ScanResponse(BaseModel):
    """Number of payments found and delivered."""

    count: int = Field(..., description="Payments delivered")


# ============================================================================
# Checkpoint
# ============================================================================

class ResetCheckpointRequest(BaseModel):
    """Request to overwrite the last processed block height."""

    height: int = Field(..., ge=0, description="New last processed block height")


class ResetCheckpointResponse(BaseModel):
    height: int
    previous_height: int


# ============================================================================
# Health
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    indexer: bool = Field(..., description="Block indexer connectivity")
    tracking_running: bool = Field(..., description="A tracking run is in progress")
    last_processed_height: int = Field(..., description="Checkpoint")
    violation: Optional[str] = Field(None, description="Critical problem, if any")
    stats: dict[str, Any] = Field(..., description="Tracking run statistics")
