"""Perp venue availability: explicit circuit instead of ad hoc probing."""

from __future__ import annotations

import enum
import time
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from agentic_trader.venues.base import PerpVenue

logger = structlog.get_logger()


class VenueStatus(enum.Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class VenueCircuit:
    """
    UNKNOWN -> AVAILABLE on first successful read.
    AVAILABLE -> UNAVAILABLE after `failure_threshold` consecutive read failures.
    UNAVAILABLE -> re-probed (one read allowed) after `retry_seconds`.
    With no venue configured the circuit is permanently UNAVAILABLE.
    """

    def __init__(
        self,
        venue: PerpVenue | None,
        failure_threshold: int = 3,
        retry_seconds: float = 300.0,
    ) -> None:
        self.venue = venue
        self.failure_threshold = failure_threshold
        self.retry_seconds = retry_seconds
        self.status = VenueStatus.UNKNOWN if venue is not None else VenueStatus.UNAVAILABLE
        self.consecutive_failures = 0
        self.opened_at: float | None = None

    @property
    def available(self) -> bool:
        return self.status == VenueStatus.AVAILABLE

    def should_query(self) -> bool:
        """True if the venue may be read this cycle."""
        if self.venue is None:
            return False
        if self.status != VenueStatus.UNAVAILABLE:
            return True
        return self.opened_at is not None and (
            time.monotonic() - self.opened_at >= self.retry_seconds
        )

    async def probe(self) -> VenueStatus:
        """Startup probe: one collateral read decides the initial status."""
        if self.venue is None:
            return self.status
        try:
            await self.venue.get_collateral()
            self.record_success()
        except Exception as e:
            logger.warning("venue_probe_failed", error=str(e))
            self._open()
        return self.status

    def record_success(self) -> None:
        if self.status != VenueStatus.AVAILABLE:
            logger.info("venue_available", previous=self.status.value)
        self.status = VenueStatus.AVAILABLE
        self.consecutive_failures = 0
        self.opened_at = None

    def record_failure(self, error: str = "") -> None:
        self.consecutive_failures += 1
        if self.status == VenueStatus.UNAVAILABLE:
            # Failed re-probe: restart the wait
            self.opened_at = time.monotonic()
            return
        logger.warning(
            "venue_read_failed",
            consecutive_failures=self.consecutive_failures,
            error=error,
        )
        if self.consecutive_failures >= self.failure_threshold or self.status == VenueStatus.UNKNOWN:
            self._open()

    def _open(self) -> None:
        self.status = VenueStatus.UNAVAILABLE
        self.opened_at = time.monotonic()
        logger.warning("venue_unavailable", retry_seconds=self.retry_seconds)
