"""Tests for ingest.py -- record coercion and batch loading."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone

import pytest

from wearmerge.ingest import (
    load_batch,
    parse_confidence,
    parse_name,
    parse_priority,
    parse_row,
    parse_rows,
    parse_timestamp,
    parse_value,
)
from wearmerge.reconcile.models import MalformedRowError

from tests.conftest import make_record, write_json, write_jsonl


# ===================================================================
# Field coercion
# ===================================================================


class TestParseTimestamp:
    def test_plain_date(self):
        assert parse_timestamp("2024-03-01") == datetime(2024, 3, 1)

    def test_zulu(self):
        ts = parse_timestamp("2024-03-01T10:15:00Z")
        assert ts == datetime(2024, 3, 1, 10, 15, tzinfo=timezone.utc)

    def test_offset(self):
        ts = parse_timestamp("2024-03-01T10:15:00+02:00")
        assert ts.utcoffset().total_seconds() == 7200

    def test_date_object(self):
        assert parse_timestamp(date(2024, 3, 1)) == datetime(2024, 3, 1)

    def test_datetime_passthrough(self):
        ts = datetime(2024, 3, 1, 5)
        assert parse_timestamp(ts) is ts

    def test_postgres_style(self):
        ts = parse_timestamp("2024-03-01 10:00:00.12345+00")
        assert ts == datetime(2024, 3, 1, 10, 0, 0, 123450, tzinfo=timezone.utc)

    def test_compact_offset(self):
        ts = parse_timestamp("2024-03-01T10:00:00+0530")
        assert ts.utcoffset().total_seconds() == 19800

    def test_long_fraction_truncated(self):
        ts = parse_timestamp("2024-03-01T10:00:00.1234567Z")
        assert ts.microsecond == 123456
        assert ts.tzinfo == timezone.utc

    @pytest.mark.parametrize(
        "raw", ["", "yesterday", "2024-13-01", "2024-13-01 10:00:00+00", None, 20240301]
    )
    def test_invalid(self, raw):
        with pytest.raises(MalformedRowError):
            parse_timestamp(raw)


class TestParseValue:
    def test_int(self):
        assert parse_value(8000) == 8000.0

    def test_numeric_string(self):
        assert parse_value("14.2") == 14.2

    def test_zero_valid(self):
        assert parse_value(0) == 0.0
        assert parse_value("0") == 0.0

    @pytest.mark.parametrize("raw", [None, "", "n/a", True, "nan", "inf", [1]])
    def test_invalid(self, raw):
        with pytest.raises(MalformedRowError):
            parse_value(raw)

    def test_int_too_large_for_float(self):
        with pytest.raises(MalformedRowError, match="value"):
            parse_value(int("9" * 400))

    def test_field_name_in_message(self):
        with pytest.raises(MalformedRowError, match="confidence"):
            parse_value("x", "confidence")


class TestParsePriority:
    def test_missing(self):
        assert parse_priority(None) is None
        assert parse_priority("") is None

    def test_zero_is_a_priority(self):
        assert parse_priority(0) == 0

    def test_string(self):
        assert parse_priority("3") == 3

    def test_invalid(self):
        with pytest.raises(MalformedRowError):
            parse_priority("high")

    def test_infinite(self):
        with pytest.raises(MalformedRowError):
            parse_priority(float("inf"))


class TestParseConfidence:
    def test_missing(self):
        assert parse_confidence(None) is None
        assert parse_confidence("") is None

    def test_numeric(self):
        assert parse_confidence(87.5) == 87.5
        assert parse_confidence("0") == 0.0

    def test_invalid(self):
        with pytest.raises(MalformedRowError, match="confidence"):
            parse_confidence("high")


class TestParseName:
    def test_kept_verbatim(self):
        assert parse_name("Day Strain", "metric_name") == "Day Strain"

    @pytest.mark.parametrize("raw", [None, "", "   ", 123, ["Steps"]])
    def test_invalid(self, raw):
        with pytest.raises(MalformedRowError, match="source"):
            parse_name(raw, "source")


# ===================================================================
# Rows
# ===================================================================


class TestParseRow:
    def test_full_record(self):
        row = parse_row(make_record(
            "Weight", "withings", "81.3", "2024-03-01",
            priority=1, created_at="2024-03-01T07:00:00Z", unit="kg",
        ))
        assert row.metric_name == "Weight"
        assert row.source == "withings"
        assert row.value == 81.3
        assert row.day == date(2024, 3, 1)
        assert row.priority == 1
        assert row.created_at == datetime(2024, 3, 1, 7, tzinfo=timezone.utc)
        assert row.unit == "kg"

    def test_optional_fields_absent(self):
        row = parse_row(make_record())
        assert row.priority is None
        assert row.created_at is None
        assert row.unit is None

    def test_missing_field(self):
        record = make_record()
        del record["value"]
        with pytest.raises(MalformedRowError, match="value"):
            parse_row(record)

    def test_not_a_mapping(self):
        with pytest.raises(MalformedRowError):
            parse_row(["Steps", 1])

    def test_row_is_frozen(self):
        row = parse_row(make_record())
        with pytest.raises(AttributeError):
            row.value = 1

    def test_null_names_rejected(self):
        with pytest.raises(MalformedRowError, match="metric_name"):
            parse_row(make_record(None, None, 5))

    def test_non_string_source_rejected(self):
        with pytest.raises(MalformedRowError, match="source"):
            parse_row(make_record("Steps", 123, 5))

    def test_blank_metric_rejected(self):
        with pytest.raises(MalformedRowError, match="metric_name"):
            parse_row(make_record("  ", "whoop", 5))

    def test_confidence(self):
        assert parse_row(make_record(confidence=87.5)).confidence == 87.5

    def test_confidence_score_key(self):
        assert parse_row(make_record(confidence_score="90")).confidence == 90.0

    def test_bad_confidence(self):
        with pytest.raises(MalformedRowError, match="confidence"):
            parse_row(make_record(confidence="high"))


class TestParseRows:
    def test_bad_record_skipped(self, caplog):
        records = [
            make_record(value=100),
            make_record(value="broken"),
            make_record(date="not-a-date"),
            make_record(value=0),
        ]
        with caplog.at_level(logging.WARNING, logger="wearmerge.ingest"):
            rows = parse_rows(records)
        assert [r.value for r in rows] == [100.0, 0.0]
        assert "Skipping record 1" in caplog.text
        assert "Skipping record 2" in caplog.text

    def test_empty(self):
        assert parse_rows([]) == []

    def test_null_names_skipped(self):
        rows = parse_rows([make_record(None, None, 5), make_record(source="garmin")])
        assert [r.source for r in rows] == ["garmin"]


# ===================================================================
# Batch files
# ===================================================================


class TestLoadBatch:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_batch(tmp_path / "nope.json")

    def test_json_array(self, tmp_path, mixed_records):
        f = write_json(tmp_path / "batch.json", mixed_records)
        assert len(load_batch(f)) == len(mixed_records)

    def test_records_object(self, tmp_path, mixed_records):
        f = write_json(tmp_path / "batch.json", {"records": mixed_records})
        assert len(load_batch(f)) == len(mixed_records)

    def test_jsonl(self, tmp_path, mixed_records):
        f = write_jsonl(tmp_path / "batch.jsonl", mixed_records)
        assert len(load_batch(str(f))) == len(mixed_records)

    def test_jsonl_invalid_line_skipped(self, tmp_path, caplog):
        f = tmp_path / "batch.jsonl"
        f.write_text(json.dumps(make_record()) + "\nnot json\n\n")
        with caplog.at_level(logging.WARNING, logger="wearmerge.ingest"):
            rows = load_batch(f)
        assert len(rows) == 1
        assert "invalid JSON" in caplog.text

    def test_invalid_json(self, tmp_path):
        f = tmp_path / "batch.json"
        f.write_text("{broken")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_batch(f)

    def test_object_without_records(self, tmp_path):
        f = write_json(tmp_path / "batch.json", {"rows": []})
        with pytest.raises(ValueError, match="records"):
            load_batch(f)

    def test_oversized_value_skipped(self, tmp_path):
        f = write_jsonl(tmp_path / "batch.jsonl", [
            make_record(value=int("9" * 400)),
            make_record(source="garmin"),
        ])
        assert [r.source for r in load_batch(f)] == ["garmin"]

    def test_malformed_rows_do_not_abort(self, tmp_path):
        f = write_json(tmp_path / "batch.json", [make_record(), {"metric_name": "Steps"}])
        assert len(load_batch(f)) == 1
