"""Totals and averages across daily health records."""

from collections.abc import Sequence
from dataclasses import dataclass

from .models import HealthRecord


class EmptyRecordsError(ValueError):
    """Raised when averaging over no records."""


def total_steps(records: Sequence[HealthRecord]) -> int:
    return sum(r.steps for r in records)


def total_distance(records: Sequence[HealthRecord]) -> float:
    return sum((r.distance for r in records), 0.0)


def average_heart_rate(records: Sequence[HealthRecord]) -> float:
    """Mean of the per-day heart rates.

    Days without heart-rate samples contribute 0 to the mean.

    Raises:
        EmptyRecordsError: ``records`` is empty.
    """
    if not records:
        raise EmptyRecordsError("Cannot average heart rate over zero records")
    return sum(r.heart_rate for r in records) / len(records)


@dataclass(frozen=True)
class HealthSummary:
    """Summary card values for a set of records."""

    total_steps: int = 0
    total_distance: float = 0.0
    average_heart_rate: float | None = None
    days: int = 0

    @classmethod
    def from_records(cls, records: Sequence[HealthRecord]) -> "HealthSummary":
        return cls(
            total_steps=total_steps(records),
            total_distance=total_distance(records),
            average_heart_rate=average_heart_rate(records) if records else None,
            days=len(records),
        )
