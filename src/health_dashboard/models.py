"""Data models for daily health records and signed-in identities."""

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Any

ONE_DAY = timedelta(days=1)


class MetricType(str, Enum):
    """Health metric types readable from the data store."""

    STEP_COUNT = "step_count"
    DISTANCE_WALKING_RUNNING = "distance_walking_running"
    HEART_RATE = "heart_rate"


class AggregationMode(str, Enum):
    """Statistics aggregation modes."""

    CUMULATIVE_SUM = "cumulative_sum"
    DISCRETE_AVERAGE = "discrete_average"


@dataclass(frozen=True)
class Statistic:
    """Aggregate value of one metric over ``[start, end)``.

    ``value`` is None when the store holds no samples for the interval.
    """

    start: datetime
    end: datetime
    value: float | None


@dataclass(frozen=True)
class DateWindow:
    """Half-open time window ``[start, end)`` queried by a fetch."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("DateWindow bounds must be timezone-aware")
        if self.end <= self.start:
            raise ValueError(
                f"DateWindow end {self.end.isoformat()} must be after start "
                f"{self.start.isoformat()}"
            )

    @classmethod
    def today(cls, tz: tzinfo, now: datetime | None = None) -> "DateWindow":
        """Start of the local day through now."""
        return cls.last_days(1, tz, now)

    @classmethod
    def last_days(cls, days: int, tz: tzinfo, now: datetime | None = None) -> "DateWindow":
        """Start of the local day ``days - 1`` days ago through now."""
        if days < 1:
            raise ValueError(f"days must be at least 1, got {days}")
        now = now.astimezone(tz) if now else datetime.now(tz)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(start=midnight - (days - 1) * ONE_DAY, end=now)


@dataclass(frozen=True)
class HealthRecord:
    """Steps, distance and heart rate for one day bucket."""

    date: datetime
    steps: int
    distance: float
    heart_rate: float

    def to_dict(self) -> dict[str, Any]:
        """Convert record to a JSON-friendly dictionary."""
        return {
            "date": self.date.isoformat(),
            "steps": self.steps,
            "distance": self.distance,
            "heart_rate": self.heart_rate,
        }


@dataclass(frozen=True)
class PersonName:
    """Given and family name as disclosed by the identity provider."""

    given: str | None = None
    family: str | None = None

    def display(self) -> str:
        """Format as ``"Given Family"``, skipping absent parts."""
        return " ".join(part for part in (self.given, self.family) if part)

    @classmethod
    def parse(cls, text: str | None) -> "PersonName | None":
        """Parse a display string back into name components."""
        if not text or not text.strip():
            return None
        given, _, family = text.strip().partition(" ")
        return cls(given=given, family=family.strip() or None)


@dataclass(frozen=True)
class UserIdentity:
    """Signed-in user. Every field may be absent.

    ``full_name`` and ``email`` are disclosed by Sign in with Apple on the
    first grant only, so they are usually absent on later sign-ins and must
    come from local persistence.
    """

    id: str | None = None
    full_name: PersonName | None = None
    email: str | None = None

    @property
    def is_signed_in(self) -> bool:
        """Whether a user id has been stored."""
        return self.id is not None

    @property
    def display_name(self) -> str | None:
        """Full name as one string, or None when not disclosed."""
        if self.full_name is None:
            return None
        return self.full_name.display() or None
