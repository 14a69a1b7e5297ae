"""Health data source interface and error taxonomy."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from .models import AggregationMode, MetricType, Statistic


class HealthDataError(Exception):
    """Base class for failures surfaced by a health data fetch."""


class AuthorizationDeniedError(HealthDataError):
    """Read authorization for the requested metric types was refused."""

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or "Authorization failed")
        self.reason = reason


class FetchFailedError(HealthDataError):
    """The primary step query failed or returned no collection."""

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or "Failed to fetch step data")
        self.reason = reason


class HealthDataUnavailableError(FetchFailedError):
    """The health data store cannot be reached at all."""

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or "Health data is not available")


class HealthQueryError(HealthDataError):
    """A single statistics query against the source failed."""


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of a read-authorization request."""

    granted: bool
    reason: str | None = None


@runtime_checkable
class HealthDataSource(Protocol):
    """Provider of time-bounded aggregate statistics for health metrics."""

    def is_available(self) -> bool:
        """Whether the store can be queried at all."""
        ...

    async def request_authorization(
        self, read_types: frozenset[MetricType]
    ) -> AuthorizationResult:
        """Ask for read access to the given metric types."""
        ...

    async def query_statistics(
        self,
        metric: MetricType,
        mode: AggregationMode,
        start: datetime,
        end: datetime,
        bucket: timedelta | None = None,
    ) -> list[Statistic]:
        """Aggregate ``metric`` over ``[start, end)``.

        With ``bucket`` set, one statistic per non-empty bucket; otherwise at
        most one statistic covering the whole interval. Returns an empty list
        when there is no data and raises HealthQueryError on failure.
        """
        ...
