"""Text, JSON and CSV rendering of dashboard state."""

import csv
import io
import json
from collections.abc import Sequence

from .dashboard import DashboardState
from .models import HealthRecord, UserIdentity
from .summary import HealthSummary

LOADING_MESSAGE = "Fetching Health Data..."
EMPTY_MESSAGE = "No Health Data Available"

CSV_COLUMNS = ["date", "steps", "distance", "heart_rate"]


def format_summary_cards(summary: HealthSummary) -> str:
    """Format the three summary cards."""
    lines = [
        f"Total Steps: {summary.total_steps}",
        f"Total Distance: {summary.total_distance:.2f} m",
    ]
    if summary.average_heart_rate is None:
        lines.append("Average Heart Rate: --")
    else:
        lines.append(f"Average Heart Rate: {summary.average_heart_rate:.0f} bpm")
    return "\n".join(lines)


def format_record_row(record: HealthRecord) -> str:
    return (
        f"{record.date.strftime('%Y-%m-%d')}"
        f"  Steps: {record.steps}"
        f"  Distance: {record.distance:.2f} m"
        f"  Heart Rate: {record.heart_rate:.0f} bpm"
    )


def format_records_table(records: Sequence[HealthRecord]) -> str:
    lines = ["Health Data", "---"]
    lines.extend(format_record_row(r) for r in records)
    return "\n".join(lines)


def format_state(state: DashboardState) -> str:
    """Render whichever of loading, error, empty or data applies."""
    status = state.status
    if status == "loading":
        return LOADING_MESSAGE
    if status == "error":
        return f"Error: {state.error_message}"
    if status in ("empty", "idle"):
        return EMPTY_MESSAGE
    return "\n\n".join(
        [format_summary_cards(state.summary), format_records_table(state.records)]
    )


def records_to_json(records: Sequence[HealthRecord]) -> str:
    summary = HealthSummary.from_records(records)
    output = {
        "records": [r.to_dict() for r in records],
        "count": len(records),
        "summary": {
            "total_steps": summary.total_steps,
            "total_distance": summary.total_distance,
            "average_heart_rate": summary.average_heart_rate,
        },
    }
    return json.dumps(output, indent=2)


def records_to_csv(records: Sequence[HealthRecord]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_COLUMNS)
    for r in records:
        writer.writerow([r.date.isoformat(), r.steps, r.distance, r.heart_rate])
    return buf.getvalue()


def format_identity(identity: UserIdentity) -> str:
    """Format the signed-in user lines; absent fields are skipped."""
    if not identity.is_signed_in:
        return "Not signed in"
    lines = [f"User ID: {identity.id}"]
    if identity.display_name:
        lines.append(f"Full Name: {identity.display_name}")
    if identity.email:
        lines.append(f"Email: {identity.email}")
    return "\n".join(lines)
