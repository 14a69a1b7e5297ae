"""Dashboard view state driven by the daily aggregator."""

from dataclasses import dataclass, field
from typing import Literal

import structlog

from .aggregator import DailyAggregator
from .models import DateWindow, HealthRecord
from .source import HealthDataError
from .summary import HealthSummary

logger = structlog.get_logger(__name__)

DashboardStatus = Literal["idle", "loading", "error", "empty", "data"]


@dataclass(frozen=True)
class DashboardState:
    """Snapshot of what the dashboard should render."""

    is_loading: bool = False
    error_message: str | None = None
    records: list[HealthRecord] = field(default_factory=list)
    fetched: bool = False

    @property
    def status(self) -> DashboardStatus:
        if self.is_loading:
            return "loading"
        if self.error_message is not None:
            return "error"
        if not self.fetched:
            return "idle"
        return "data" if self.records else "empty"

    @property
    def summary(self) -> HealthSummary:
        return HealthSummary.from_records(self.records)


class HealthDashboard:
    """Owns transient view state for the health dashboard.

    Each refresh gets a generation number; a fetch that completes after a
    newer refresh started is discarded instead of overwriting newer state.
    """

    def __init__(self, aggregator: DailyAggregator) -> None:
        self._aggregator = aggregator
        self._generation = 0
        self.state = DashboardState()

    async def refresh(self, window: DateWindow | None = None) -> DashboardState:
        """Clear current records and fetch a new set."""
        self._generation += 1
        generation = self._generation
        self.state = DashboardState(is_loading=True)

        try:
            records = await self._aggregator.fetch(window)
        except HealthDataError as e:
            if self._is_stale(generation):
                return self.state
            self.state = DashboardState(error_message=str(e), fetched=True)
            return self.state

        if self._is_stale(generation):
            return self.state
        self.state = DashboardState(records=records, fetched=True)
        return self.state

    def _is_stale(self, generation: int) -> bool:
        if generation == self._generation:
            return False
        logger.info(
            "stale_fetch_discarded",
            generation=generation,
            current_generation=self._generation,
        )
        return True
