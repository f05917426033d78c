"""Typed records flowing through the reconciliation core.

A :class:`MetricRow` is one observation as read from the metrics table.
Rows are frozen: views select and copy references to them, never mutate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ReconcileError(Exception):
    """Base class for reconciliation errors."""


class MalformedRowError(ReconcileError, ValueError):
    """A record that cannot be turned into a usable MetricRow."""


class UnknownDeviceFilterError(ReconcileError, ValueError):
    """A device filter outside the supported vocabulary (strict mode only)."""


class AliasTableError(ReconcileError, ValueError):
    """An alias table that is not a mapping of name -> list of names."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DeviceFilter(str, Enum):
    """Source filter vocabulary accepted by the device-filtered views."""

    ALL = "all"
    WHOOP = "whoop"
    WITHINGS = "withings"
    TERRA = "terra"
    MANUAL = "manual"
    APPLE_HEALTH = "apple_health"
    GARMIN = "garmin"
    ULTRAHUMAN = "ultrahuman"


class ReductionMode(str, Enum):
    """How a group of competing rows is folded to one winner.

    LATEST:             priority ascending, then later measurement, then later ingestion.
    DAILY_MAX:          largest value in the day bucket (series charts).
    HIGHEST_CONFIDENCE: highest confidence score, LATEST order on ties.
    AVERAGE:            confidence-weighted mean, reported as source "aggregated".
    MEDIAN:             middle value; an even group averages its two middle rows.
    MOST_RECENT:        later measurement, then later ingestion; priority ignored.
    MANUAL_OVERRIDE:    a manual entry if there is one, else HIGHEST_CONFIDENCE.
    """

    LATEST = "latest"
    DAILY_MAX = "daily_max"
    HIGHEST_CONFIDENCE = "highest_confidence"
    AVERAGE = "average"
    MEDIAN = "median"
    MOST_RECENT = "most_recent"
    MANUAL_OVERRIDE = "manual_override"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def as_utc(ts: datetime) -> datetime:
    """Make a timestamp comparable: naive values are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large for a float
        return False


@dataclass(frozen=True)
class MetricRow:
    """One metric observation from one source."""

    metric_name: str
    source: str
    value: float
    measured_at: datetime
    priority: int | None = None  # None = no priority, ranks after all others
    created_at: datetime | None = None
    unit: str | None = None
    confidence: float | None = None  # 0-100 data-quality score, None = unscored

    @property
    def day(self) -> date:
        """Calendar day of the measurement, as reported."""
        return self.measured_at.date()

    @property
    def is_usable(self) -> bool:
        """True when every field the reducer compares has a comparable type."""
        if not _is_finite_number(self.value):
            return False
        if not isinstance(self.measured_at, datetime):
            return False
        if self.created_at is not None and not isinstance(self.created_at, datetime):
            return False
        if self.confidence is not None and not _is_finite_number(self.confidence):
            return False
        if self.priority is None:
            return True
        return isinstance(self.priority, int) and not isinstance(self.priority, bool)

    def __repr__(self) -> str:
        prio = "-" if self.priority is None else str(self.priority)
        conf = "" if self.confidence is None else f", conf={self.confidence!r}"
        return (
            f"MetricRow({self.metric_name!r}={self.value!r} "
            f"from {self.source} @ {self.measured_at}, p={prio}{conf})"
        )


@dataclass(frozen=True)
class ReconciledMetric:
    """The winning row for one canonical metric (and day, for series)."""

    canonical_name: str
    row: MetricRow
    day: date | None = None
    candidates: int = 1

    @property
    def value(self) -> float:
        return self.row.value

    @property
    def source(self) -> str:
        return self.row.source

    def __repr__(self) -> str:
        when = f" on {self.day.isoformat()}" if self.day else ""
        return (
            f"ReconciledMetric({self.canonical_name}{when}: "
            f"{self.row.value:g} from {self.row.source}, "
            f"{self.candidates} candidate(s))"
        )


@dataclass(frozen=True)
class SeriesPoint:
    """One point of a bounded series."""

    date: str  # ISO date string, e.g. "2024-03-01"
    value: float

    def to_dict(self) -> dict[str, float | str]:
        return {"date": self.date, "value": self.value}
