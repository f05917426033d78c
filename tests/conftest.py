"""Shared fixtures and helpers for the wearmerge test suite."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest

from wearmerge.ingest import parse_timestamp
from wearmerge.reconcile.models import MetricRow


# ---------------------------------------------------------------------------
# Row-building helpers
# ---------------------------------------------------------------------------


def make_row(
    metric: str = "Steps",
    source: str = "whoop",
    value: float = 8000.0,
    date: str | datetime = "2024-03-01",
    priority: int | None = None,
    created_at: str | datetime | None = None,
    unit: str | None = None,
    confidence: float | None = None,
) -> MetricRow:
    """Build a MetricRow from test-friendly string dates."""
    return MetricRow(
        metric_name=metric,
        source=source,
        value=value,
        measured_at=parse_timestamp(date),
        priority=priority,
        created_at=parse_timestamp(created_at, "created_at") if created_at else None,
        unit=unit,
        confidence=confidence,
    )


def make_record(
    metric: str = "Steps",
    source: str = "whoop",
    value: object = 8000,
    date: str = "2024-03-01",
    **extra: object,
) -> dict:
    """Build a storage-style record dict as the metrics table returns it."""
    record = {
        "metric_name": metric,
        "source": source,
        "value": value,
        "measurement_date": date,
    }
    record.update(extra)
    return record


# ---------------------------------------------------------------------------
# Batch file helpers
# ---------------------------------------------------------------------------


def write_json(path: Path, data: object) -> Path:
    path.write_text(json.dumps(data))
    return path


def write_jsonl(path: Path, entries: list[dict]) -> Path:
    """Write a list of dicts as JSONL to the given path."""
    with open(path, "w") as f:
        for entry in entries:
            f.write(json.dumps(entry) + "\n")
    return path


@pytest.fixture
def steps_batch() -> list[MetricRow]:
    """Whoop (priority 1) and Garmin (priority 6) both report steps."""
    return [
        make_row("Steps", "whoop", 8000, "2024-03-01", priority=1),
        make_row("Steps", "garmin", 9500, "2024-03-01", priority=6),
    ]


@pytest.fixture
def mixed_records() -> list[dict]:
    """A small export covering aliases, several sources and days."""
    return [
        make_record("Steps", "whoop", 8000, "2024-03-01", priority=1, unit="steps"),
        make_record("Steps", "garmin", 9500, "2024-03-01", priority=6, unit="steps"),
        make_record("Steps", "garmin", 11000, "2024-03-02", priority=6, unit="steps"),
        make_record("Day Strain", "whoop", 14.2, "2024-03-02", priority=1),
        make_record("Activity Score", "ultrahuman", 71, "2024-03-02", priority=4),
        make_record("Weight", "withings", 81.3, "2024-03-01", priority=1, unit="kg"),
    ]
