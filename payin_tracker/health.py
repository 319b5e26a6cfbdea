"""
Health statistics of periodic tracking runs.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass
class TrackingStats:
    """Outcome of recent tracking runs."""

    runs: int = 0
    last_started_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    last_failed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    last_payment_count: int = 0
    total_payments: int = 0


class HealthService:
    """Collects tracking outcomes for the health endpoint."""

    def __init__(self, max_consecutive_failures: int = 5):
        self.max_consecutive_failures = max_consecutive_failures
        self.stats = TrackingStats()

    def tracking_started(self) -> None:
        self.stats.runs += 1
        self.stats.last_started_at = datetime.now(timezone.utc)

    def tracking_completed(self, payment_count: int) -> None:
        self.stats.last_completed_at = datetime.now(timezone.utc)
        self.stats.consecutive_failures = 0
        self.stats.last_payment_count = payment_count
        self.stats.total_payments += payment_count

    def tracking_failed(self, error: BaseException) -> None:
        self.stats.last_failed_at = datetime.now(timezone.utc)
        self.stats.last_error = str(error) or type(error).__name__
        self.stats.consecutive_failures += 1

    def health_violation(self) -> Optional[str]:
        """Message describing a critical problem, or None if healthy."""
        failures = self.stats.consecutive_failures
        if failures >= self.max_consecutive_failures:
            return f"Tracking failed {failures} times in a row: {self.stats.last_error}"
        return None

    def snapshot(self) -> dict[str, Any]:
        return asdict(self.stats)
