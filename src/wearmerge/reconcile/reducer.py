"""Fold competing rows for one metric down to a single winner.

Policies are selected by :class:`ReductionMode`:

``LATEST``
    1. Lower ``priority`` wins; a row without priority ranks after every
       row that has one.
    2. Later ``measured_at`` wins.
    3. Later ``created_at`` wins (missing = Unix epoch).
    4. Full tie: the row seen last in input order wins.

``DAILY_MAX``
    The largest ``value`` in the bucket wins; equal maxima resolve to the
    row seen last in input order. Used for series charts where one point
    per day is drawn.

The remaining policies (``HIGHEST_CONFIDENCE``, ``AVERAGE``, ``MEDIAN``,
``MOST_RECENT``, ``MANUAL_OVERRIDE``) are documented on their pickers.
``AVERAGE`` and an even-sized ``MEDIAN`` synthesize a new row with source
``"aggregated"``. :func:`reduce_rows` can first drop rows scored below
``min_confidence``; when that leaves nothing, the highest-confidence row of
the whole group is used.

Rows are never mutated. Malformed rows are dropped by :func:`usable_rows`
with a warning so that one bad record cannot poison the batch.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from datetime import date
from typing import Iterable, Sequence

import numpy as np

from wearmerge.reconcile.aliases import AliasResolver, DEFAULT_RESOLVER
from wearmerge.reconcile.models import (
    EPOCH,
    DeviceFilter,
    MetricRow,
    ReductionMode,
    as_utc,
)

logger = logging.getLogger(__name__)

AGGREGATED_SOURCE = "aggregated"


def usable_rows(rows: Iterable[MetricRow]) -> list[MetricRow]:
    """Return the rows the reducer can compare, logging each one dropped."""
    kept: list[MetricRow] = []
    skipped = 0
    for row in rows:
        if row.is_usable:
            kept.append(row)
        else:
            skipped += 1
            logger.warning("Skipping malformed metric row: %r", row)
    if skipped:
        logger.info("Skipped %d malformed row(s), kept %d", skipped, len(kept))
    return kept


def latest_rank(row: MetricRow) -> tuple:
    """Sort key for the LATEST policy; larger ranks better."""
    has_priority = row.priority is not None
    return (
        has_priority,
        -row.priority if has_priority else 0,
        as_utc(row.measured_at),
        as_utc(row.created_at) if row.created_at is not None else EPOCH,
    )


def pick_latest(rows: Sequence[MetricRow]) -> MetricRow | None:
    """Winner under the LATEST policy, or None for an empty group."""
    best: MetricRow | None = None
    best_rank: tuple | None = None
    for row in rows:
        rank = latest_rank(row)
        if best_rank is None or rank >= best_rank:
            best, best_rank = row, rank
    return best


def pick_daily_max(rows: Sequence[MetricRow]) -> MetricRow | None:
    """Winner under the DAILY_MAX policy, or None for an empty group."""
    best: MetricRow | None = None
    for row in rows:
        if best is None or row.value >= best.value:
            best = row
    return best


def _pick_max(rows: Sequence[MetricRow], key) -> MetricRow | None:
    best: MetricRow | None = None
    best_key: tuple | None = None
    for row in rows:
        k = key(row)
        if best_key is None or k >= best_key:
            best, best_key = row, k
    return best


def recency_rank(row: MetricRow) -> tuple:
    """Sort key for MOST_RECENT; larger ranks better."""
    return (
        as_utc(row.measured_at),
        as_utc(row.created_at) if row.created_at is not None else EPOCH,
    )


def confidence_rank(row: MetricRow) -> tuple:
    """Sort key for HIGHEST_CONFIDENCE; unscored rows rank last."""
    scored = row.confidence is not None
    return (scored, row.confidence if scored else 0.0, latest_rank(row))


def pick_highest_confidence(rows: Sequence[MetricRow]) -> MetricRow | None:
    """Highest confidence wins; ties fall back to the LATEST order."""
    return _pick_max(rows, confidence_rank)


def pick_most_recent(rows: Sequence[MetricRow]) -> MetricRow | None:
    """Later measurement wins, then later ingestion; priority is ignored."""
    return _pick_max(rows, recency_rank)


def pick_manual_override(rows: Sequence[MetricRow]) -> MetricRow | None:
    """The best manual entry if any, else the highest-confidence row."""
    manual = [row for row in rows if row.source == DeviceFilter.MANUAL.value]
    return pick_latest(manual) or pick_highest_confidence(rows)


def pick_average(rows: Sequence[MetricRow]) -> MetricRow | None:
    """Confidence-weighted mean of the group as a synthesized row.

    Weights are the confidence scores when every row has one and they sum
    to more than zero; otherwise the plain mean is used. The result keeps
    the highest-confidence row's fields, with the mean as ``value`` and
    ``"aggregated"`` as ``source``. A single row is returned unchanged.
    """
    if not rows:
        return None
    if len(rows) == 1:
        return rows[0]

    values = np.array([row.value for row in rows], dtype=float)
    weights = None
    if all(row.confidence is not None for row in rows):
        scores = np.array([row.confidence for row in rows], dtype=float)
        if scores.sum() > 0:
            weights = scores

    mean = float(np.average(values, weights=weights))
    base = pick_highest_confidence(rows)
    return replace(base, value=mean, source=AGGREGATED_SOURCE)


def pick_median(rows: Sequence[MetricRow]) -> MetricRow | None:
    """Middle row by value; an even group averages its two middle rows."""
    if not rows:
        return None
    ordered = sorted(rows, key=lambda row: row.value)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return pick_average(ordered[mid - 1:mid + 1])


_PICKERS = {
    ReductionMode.LATEST: pick_latest,
    ReductionMode.DAILY_MAX: pick_daily_max,
    ReductionMode.HIGHEST_CONFIDENCE: pick_highest_confidence,
    ReductionMode.AVERAGE: pick_average,
    ReductionMode.MEDIAN: pick_median,
    ReductionMode.MOST_RECENT: pick_most_recent,
    ReductionMode.MANUAL_OVERRIDE: pick_manual_override,
}


def reduce_rows(
    rows: Sequence[MetricRow],
    mode: ReductionMode = ReductionMode.LATEST,
    min_confidence: float | None = None,
) -> MetricRow | None:
    """Fold ``rows`` to one winner using the policy named by ``mode``.

    Args:
        rows: Competing rows for one metric (or one metric-day).
        mode: Reduction policy (default LATEST).
        min_confidence: When set, rows scored below it (or unscored) are
            ignored. If no row qualifies, the highest-confidence row of the
            whole group is returned.

    Returns:
        The winning row, or None for an empty group.
    """
    picker = _PICKERS[ReductionMode(mode)]
    if min_confidence is not None and rows:
        eligible = [
            row for row in rows
            if row.confidence is not None and row.confidence >= min_confidence
        ]
        if not eligible:
            logger.warning(
                "No row meets minimum confidence %g, using highest confidence of %d",
                min_confidence, len(rows),
            )
            return pick_highest_confidence(rows)
        rows = eligible
    return picker(rows)


def group_by_metric(
    rows: Iterable[MetricRow],
    resolver: AliasResolver | None = None,
) -> dict[str, list[MetricRow]]:
    """Bucket rows by canonical metric name, preserving input order."""
    resolver = resolver or DEFAULT_RESOLVER
    groups: dict[str, list[MetricRow]] = defaultdict(list)
    for row in rows:
        groups[resolver.canonical_name(row.metric_name)].append(row)
    return dict(groups)


def group_by_metric_and_day(
    rows: Iterable[MetricRow],
    resolver: AliasResolver | None = None,
) -> dict[str, dict[date, list[MetricRow]]]:
    """Bucket rows by canonical metric, then by calendar day."""
    resolver = resolver or DEFAULT_RESOLVER
    groups: dict[str, dict[date, list[MetricRow]]] = defaultdict(
        lambda: defaultdict(list)
    )
    for row in rows:
        groups[resolver.canonical_name(row.metric_name)][row.day].append(row)
    return {name: dict(days) for name, days in groups.items()}
