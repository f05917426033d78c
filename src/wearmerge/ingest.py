"""Turn exported metric-table records into typed MetricRows.

Records come from a schemaless query layer, so every field is checked and
coerced here rather than inside the reducer. A bad record is skipped with
a warning; the rest of the batch still loads.

Accepted files:
    - a JSON array of records
    - a JSON object with a ``"records"`` list
    - JSONL, one record per line
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

from wearmerge.reconcile.models import MalformedRowError, MetricRow

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("metric_name", "source", "value", "measurement_date")

# Postgres-style timestamp: any fraction length, offsets like +00 or +0530
_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2})?)"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}(?::?\d{2})?)?$"
)


def _normalise_timestamp(text: str) -> str:
    """Rewrite a timestamp into the subset ``datetime.fromisoformat`` reads."""
    m = _TIMESTAMP_RE.match(text)
    if m is None:
        return text
    out = m["base"]
    if m["frac"]:
        out += "." + m["frac"][:6].ljust(6, "0")
    tz = m["tz"]
    if tz == "Z":
        out += "+00:00"
    elif tz:
        digits = tz[1:].replace(":", "")
        out += f"{tz[0]}{digits[:2]}:{digits[2:] or '00'}"
    return out


def parse_timestamp(raw: Any, field_name: str = "measurement_date") -> datetime:
    """Parse a ``YYYY-MM-DD`` date or an ISO-8601 timestamp.

    Plain dates become midnight (naive). A trailing ``Z`` is read as UTC.
    Postgres output such as ``2024-03-01 10:00:00.12345+00`` is accepted.
    """
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedRowError(f"{field_name}: expected a date string, got {raw!r}")
    text = _normalise_timestamp(raw.strip())
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise MalformedRowError(f"{field_name}: invalid timestamp {raw!r} ({e})") from e


def parse_value(raw: Any, field_name: str = "value") -> float:
    """Coerce a numeric field; zero is a valid value."""
    if isinstance(raw, bool) or raw is None:
        raise MalformedRowError(f"{field_name}: expected a number, got {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError) as e:
        raise MalformedRowError(f"{field_name}: expected a number, got {raw!r}") from e
    if not math.isfinite(value):
        raise MalformedRowError(f"{field_name}: expected a finite number, got {raw!r}")
    return value


def parse_priority(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise MalformedRowError(f"priority: expected an integer, got {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError, OverflowError) as e:
        raise MalformedRowError(f"priority: expected an integer, got {raw!r}") from e


def parse_confidence(raw: Any) -> float | None:
    """Coerce an optional 0-100 confidence score."""
    if raw is None or raw == "":
        return None
    return parse_value(raw, "confidence")


def parse_name(raw: Any, field_name: str) -> str:
    """Require a non-blank string; names are kept exactly as reported."""
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedRowError(f"{field_name}: expected a non-empty string, got {raw!r}")
    return raw


def parse_row(record: Mapping[str, Any]) -> MetricRow:
    """Build a MetricRow from one storage record.

    Raises:
        MalformedRowError: if a required field is missing or unparseable.
    """
    if not isinstance(record, Mapping):
        raise MalformedRowError(f"expected an object, got {type(record).__name__}")
    missing = [f for f in REQUIRED_FIELDS if f not in record]
    if missing:
        raise MalformedRowError(f"missing required fields: {', '.join(missing)}")

    created_raw = record.get("created_at")
    confidence_raw = record.get("confidence", record.get("confidence_score"))
    return MetricRow(
        metric_name=parse_name(record["metric_name"], "metric_name"),
        source=parse_name(record["source"], "source"),
        value=parse_value(record["value"]),
        measured_at=parse_timestamp(record["measurement_date"]),
        priority=parse_priority(record.get("priority")),
        created_at=(
            parse_timestamp(created_raw, "created_at") if created_raw else None
        ),
        unit=record.get("unit"),
        confidence=parse_confidence(confidence_raw),
    )


def parse_rows(records: Iterable[Mapping[str, Any]]) -> list[MetricRow]:
    """Parse every record, skipping and logging the malformed ones."""
    rows: list[MetricRow] = []
    skipped = 0
    for idx, record in enumerate(records):
        try:
            rows.append(parse_row(record))
        except MalformedRowError as e:
            skipped += 1
            logger.warning("Skipping record %d: %s", idx, e)
    if skipped:
        logger.warning("Skipped %d malformed record(s), loaded %d", skipped, len(rows))
    return rows


def _read_jsonl(text: str) -> list[Any]:
    records = []
    for line_num, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except ValueError:
            logger.warning("Line %d: invalid JSON, skipping", line_num)
    return records


def load_batch(path: str | Path) -> list[MetricRow]:
    """Load a batch file (JSON array, ``{"records": [...]}`` or JSONL).

    Raises:
        FileNotFoundError: if ``path`` does not exist.
        ValueError: if a ``.json`` file is not valid JSON or has no records list.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Metric batch not found: {path}")

    text = path.read_text()
    if path.suffix == ".jsonl":
        records = _read_jsonl(text)
    else:
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ValueError(f"Invalid JSON in metric batch {path}: {e}") from e
        if isinstance(data, dict):
            data = data.get("records")
        if not isinstance(data, list):
            raise ValueError(
                f"Metric batch {path} must be a list or an object with a 'records' list"
            )
        records = data

    rows = parse_rows(records)
    logger.debug("Loaded %d row(s) from %s", len(rows), path)
    return rows
