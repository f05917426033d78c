"""Per-source breakdown of each metric.

Where :func:`~wearmerge.reconcile.views.latest_per_metric` keeps one row,
the breakdown keeps the freshest row from *every* source so a widget can
show "Whoop says 14.2, Garmin says 11.8" and mark which one is primary.
Sources disagreeing strongly with the rest are flagged as outliers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Sequence

import numpy as np

from wearmerge.reconcile.aliases import AliasResolver
from wearmerge.reconcile.models import EPOCH, MetricRow, as_utc
from wearmerge.reconcile.reducer import group_by_metric, latest_rank, usable_rows


# Metrics that only make sense with fresh data.
REALTIME_METRICS = frozenset({
    "Steps",
    "Recovery Score",
    "HRV RMSSD",
    "Sleep Score",
    "Sleep Duration",
    "Resting Heart Rate",
    "Day Strain",
    "Active Calories",
    "Distance",
    "Max Heart Rate",
})

REALTIME_MAX_AGE_HOURS = 48.0
DEFAULT_MAX_AGE_HOURS = 168.0

# Percent deviation from the cross-source mean beyond which a value is an outlier.
OUTLIER_DEVIATION_PCT = 15.0


@dataclass(frozen=True)
class SourceEntry:
    """The freshest row from one source."""

    row: MetricRow
    age_hours: float  # measured_at relative to the breakdown's "now"
    outlier: bool = False

    @property
    def source(self) -> str:
        return self.row.source


@dataclass
class SourceBreakdown:
    """All fresh sources for one canonical metric, best first."""

    canonical_name: str
    entries: list[SourceEntry] = field(default_factory=list)

    @property
    def primary_source(self) -> str | None:
        return self.entries[0].source if self.entries else None

    @property
    def sources(self) -> list[str]:
        return [e.source for e in self.entries]

    def __repr__(self) -> str:
        return (
            f"SourceBreakdown({self.canonical_name}: "
            f"primary={self.primary_source}, sources={self.sources})"
        )


def detect_outliers(
    rows: Sequence[MetricRow],
    allowed_deviation_pct: float = OUTLIER_DEVIATION_PCT,
) -> list[MetricRow]:
    """Rows whose value deviates from the group mean by more than the limit.

    Fewer than two rows, or a zero mean, never produce outliers.
    """
    if len(rows) < 2:
        return []
    values = np.asarray([r.value for r in rows], dtype=np.float64)
    mean = float(np.mean(values))
    if mean == 0.0:
        return []
    deviation_pct = np.abs((values - mean) / mean) * 100.0
    return [row for row, dev in zip(rows, deviation_pct) if dev > allowed_deviation_pct]


def _newer_in_source(candidate: MetricRow, current: MetricRow) -> bool:
    cand_ts, cur_ts = as_utc(candidate.measured_at), as_utc(current.measured_at)
    if cand_ts != cur_ts:
        return cand_ts > cur_ts
    return latest_rank(candidate) >= latest_rank(current)


def _display_order(entry: SourceEntry) -> tuple:
    row = entry.row
    created = as_utc(row.created_at) if row.created_at is not None else EPOCH
    prio = row.priority if row.priority is not None else float("inf")
    # Newest measurement, then freshest ingestion, then best priority.
    return (-as_utc(row.measured_at).timestamp(), -created.timestamp(), prio)


def max_age_hours(canonical_name: str) -> float:
    if canonical_name in REALTIME_METRICS:
        return REALTIME_MAX_AGE_HOURS
    return DEFAULT_MAX_AGE_HOURS


def source_breakdown(
    rows: Iterable[MetricRow],
    now: datetime,
    resolver: AliasResolver | None = None,
    allowed_deviation_pct: float = OUTLIER_DEVIATION_PCT,
) -> dict[str, SourceBreakdown]:
    """Freshest row per source for every canonical metric.

    Args:
        rows: Batch of rows in any order.
        now: Reference time for freshness; passed in so results are
            reproducible.
        resolver: Alias resolver (default: built-in table).
        allowed_deviation_pct: Outlier threshold, see :func:`detect_outliers`.

    Returns:
        Mapping of canonical metric -> SourceBreakdown. Metrics whose every
        source is older than the freshness window are absent.
    """
    now_utc = as_utc(now)
    result: dict[str, SourceBreakdown] = {}

    for name, group in group_by_metric(usable_rows(rows), resolver).items():
        per_source: dict[str, MetricRow] = {}
        for row in group:
            current = per_source.get(row.source)
            if current is None or _newer_in_source(row, current):
                per_source[row.source] = row

        limit = timedelta(hours=max_age_hours(name))
        fresh = [
            row for row in per_source.values()
            if now_utc - as_utc(row.measured_at) <= limit
        ]
        if not fresh:
            continue

        outliers = set(detect_outliers(fresh, allowed_deviation_pct))
        entries = [
            SourceEntry(
                row=row,
                age_hours=round(
                    (now_utc - as_utc(row.measured_at)).total_seconds() / 3600.0, 1
                ),
                outlier=row in outliers,
            )
            for row in fresh
        ]
        entries.sort(key=_display_order)
        result[name] = SourceBreakdown(canonical_name=name, entries=entries)

    return result
