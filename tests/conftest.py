"""Pytest configuration and fixtures."""

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from health_dashboard.models import (  # noqa: E402
    DateWindow,
    MetricType,
    Statistic,
)
from health_dashboard.source import AuthorizationResult  # noqa: E402


class FakeHealthSource:
    """In-memory HealthDataSource.

    ``steps`` is the bucket list returned by the step query (or an exception
    to raise). ``heart_rate`` and ``distance`` map bucket start to a value,
    None, or an exception; missing buckets have no data.
    """

    def __init__(
        self,
        steps=None,
        heart_rate=None,
        distance=None,
        granted: bool = True,
        reason: str | None = None,
        available: bool = True,
        delays=None,
    ) -> None:
        self.steps = [] if steps is None else steps
        self.heart_rate = heart_rate or {}
        self.distance = distance or {}
        self.granted = granted
        self.reason = reason
        self.available = available
        self.delays = delays or {}
        self.authorization_requests: list[frozenset[MetricType]] = []
        self.queries: list[tuple] = []

    def is_available(self) -> bool:
        return self.available

    async def request_authorization(self, read_types):
        self.authorization_requests.append(read_types)
        return AuthorizationResult(granted=self.granted, reason=self.reason)

    async def query_statistics(self, metric, mode, start, end, bucket=None):
        self.queries.append((metric, mode, start, end, bucket))
        delay = self.delays.get((metric, start))
        if delay:
            await asyncio.sleep(delay)

        if metric == MetricType.STEP_COUNT:
            if isinstance(self.steps, Exception):
                raise self.steps
            return self.steps

        table = self.heart_rate if metric == MetricType.HEART_RATE else self.distance
        value = table.get(start)
        if isinstance(value, Exception):
            raise value
        if start not in table:
            return []
        return [Statistic(start=start, end=end, value=value)]


@pytest.fixture
def june_6_window():
    """Window for 2024-06-06 00:00 to 18:00 UTC."""
    return DateWindow(
        start=datetime(2024, 6, 6, 0, 0, tzinfo=timezone.utc),
        end=datetime(2024, 6, 6, 18, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def june_6_source(june_6_window):
    """One bucket of 4200 steps, 72 bpm and 3100.5 m."""
    start, end = june_6_window.start, june_6_window.end
    return FakeHealthSource(
        steps=[Statistic(start=start, end=end, value=4200.0)],
        heart_rate={start: 72.0},
        distance={start: 3100.5},
    )


@pytest.fixture
def make_source():
    """Factory for FakeHealthSource instances."""
    return FakeHealthSource
