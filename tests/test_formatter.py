"""Tests for dashboard rendering."""

import csv
import io
import json
from datetime import datetime, timezone

from health_dashboard.dashboard import DashboardState
from health_dashboard.formatter import (
    CSV_COLUMNS,
    EMPTY_MESSAGE,
    LOADING_MESSAGE,
    format_identity,
    format_record_row,
    format_state,
    format_summary_cards,
    records_to_csv,
    records_to_json,
)
from health_dashboard.models import HealthRecord, PersonName, UserIdentity
from health_dashboard.summary import HealthSummary

JUNE_6 = HealthRecord(
    date=datetime(2024, 6, 6, tzinfo=timezone.utc), steps=4200, distance=3100.5, heart_rate=72.0
)
JUNE_7 = HealthRecord(
    date=datetime(2024, 6, 7, tzinfo=timezone.utc), steps=800, distance=612.0, heart_rate=0.0
)


def test_summary_cards():
    text = format_summary_cards(HealthSummary.from_records([JUNE_6]))

    assert text.splitlines() == [
        "Total Steps: 4200",
        "Total Distance: 3100.50 m",
        "Average Heart Rate: 72 bpm",
    ]


def test_summary_cards_without_records():
    text = format_summary_cards(HealthSummary.from_records([]))

    assert "Total Steps: 0" in text
    assert "Average Heart Rate: --" in text


def test_record_row():
    row = format_record_row(JUNE_6)

    assert row.startswith("2024-06-06")
    assert "Steps: 4200" in row
    assert "Distance: 3100.50 m" in row
    assert "Heart Rate: 72 bpm" in row


def test_format_state_variants():
    assert format_state(DashboardState(is_loading=True)) == LOADING_MESSAGE
    assert format_state(DashboardState(error_message="Authorization failed", fetched=True)) == (
        "Error: Authorization failed"
    )
    assert format_state(DashboardState(fetched=True)) == EMPTY_MESSAGE
    assert format_state(DashboardState()) == EMPTY_MESSAGE


def test_format_state_with_data():
    text = format_state(DashboardState(records=[JUNE_6, JUNE_7], fetched=True))

    assert "Total Steps: 5000" in text
    assert "Average Heart Rate: 36 bpm" in text
    assert "Health Data" in text
    assert text.count("Steps: ") == 3


def test_records_to_json():
    data = json.loads(records_to_json([JUNE_6, JUNE_7]))

    assert data["count"] == 2
    assert data["records"][0] == {
        "date": "2024-06-06T00:00:00+00:00",
        "steps": 4200,
        "distance": 3100.5,
        "heart_rate": 72.0,
    }
    assert data["summary"]["total_steps"] == 5000
    assert data["summary"]["average_heart_rate"] == 36.0


def test_records_to_json_empty():
    data = json.loads(records_to_json([]))

    assert data == {
        "records": [],
        "count": 0,
        "summary": {"total_steps": 0, "total_distance": 0.0, "average_heart_rate": None},
    }


def test_records_to_csv():
    rows = list(csv.reader(io.StringIO(records_to_csv([JUNE_6]))))

    assert rows[0] == CSV_COLUMNS
    assert rows[1] == ["2024-06-06T00:00:00+00:00", "4200", "3100.5", "72.0"]


def test_format_identity():
    identity = UserIdentity(id="u1", full_name=PersonName("Ann", "Lee"), email="a@example.com")

    assert format_identity(identity).splitlines() == [
        "User ID: u1",
        "Full Name: Ann Lee",
        "Email: a@example.com",
    ]


def test_format_identity_skips_absent_fields():
    assert format_identity(UserIdentity(id="u1")) == "User ID: u1"
    assert format_identity(UserIdentity()) == "Not signed in"
