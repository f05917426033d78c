"""Read-shapes built from a reconciled batch.

All builders are pure functions over an already-fetched list of rows:

- :func:`latest_per_metric` -- one winning row per canonical metric.
- :func:`device_filtered_latest` -- the same, restricted to one source.
- :func:`bounded_series` -- one point per calendar day in ``[start, end)``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable

from wearmerge.reconcile.aliases import AliasResolver, DEFAULT_RESOLVER
from wearmerge.reconcile.models import (
    DeviceFilter,
    MetricRow,
    ReconciledMetric,
    ReductionMode,
    SeriesPoint,
    UnknownDeviceFilterError,
)
from wearmerge.reconcile.reducer import (
    group_by_metric,
    group_by_metric_and_day,
    reduce_rows,
    usable_rows,
)

logger = logging.getLogger(__name__)


def parse_device_filter(
    value: str | DeviceFilter | None,
    strict: bool = False,
) -> DeviceFilter:
    """Map a caller-supplied filter string onto :class:`DeviceFilter`.

    Matching ignores case and surrounding whitespace; ``None`` means ALL.
    An unknown value raises :class:`UnknownDeviceFilterError` when
    ``strict`` is set, otherwise it logs a warning and falls back to ALL.
    """
    if value is None:
        return DeviceFilter.ALL
    if isinstance(value, DeviceFilter):
        return value
    try:
        return DeviceFilter(value.strip().lower())
    except ValueError:
        if strict:
            raise UnknownDeviceFilterError(
                f"Unknown device filter {value!r}. "
                f"Expected one of: {', '.join(d.value for d in DeviceFilter)}"
            ) from None
        logger.warning("Unknown device filter %r, showing all sources", value)
        return DeviceFilter.ALL


def filter_by_device(
    rows: Iterable[MetricRow],
    device: DeviceFilter,
) -> list[MetricRow]:
    if device is DeviceFilter.ALL:
        return list(rows)
    return [row for row in rows if row.source == device.value]


def latest_per_metric(
    rows: Iterable[MetricRow],
    resolver: AliasResolver | None = None,
    mode: ReductionMode = ReductionMode.LATEST,
    min_confidence: float | None = None,
) -> dict[str, ReconciledMetric]:
    """Pick one authoritative row per canonical metric.

    Args:
        rows: Batch of rows in any order.
        resolver: Alias resolver (default: built-in table).
        mode: Reduction policy (default LATEST).
        min_confidence: Ignore rows scored below this, see :func:`reduce_rows`.

    Returns:
        Mapping of canonical metric name -> ReconciledMetric. Metrics with
        no usable rows are absent.
    """
    result: dict[str, ReconciledMetric] = {}
    for name, group in group_by_metric(usable_rows(rows), resolver).items():
        winner = reduce_rows(group, mode, min_confidence=min_confidence)
        if winner is not None:
            result[name] = ReconciledMetric(
                canonical_name=name, row=winner, candidates=len(group)
            )
    return result


def device_filtered_latest(
    rows: Iterable[MetricRow],
    device: str | DeviceFilter | None = DeviceFilter.ALL,
    resolver: AliasResolver | None = None,
    strict: bool = False,
    mode: ReductionMode = ReductionMode.LATEST,
    min_confidence: float | None = None,
) -> dict[str, ReconciledMetric]:
    """:func:`latest_per_metric` over the rows reported by one source."""
    selected = parse_device_filter(device, strict=strict)
    return latest_per_metric(
        filter_by_device(rows, selected), resolver,
        mode=mode, min_confidence=min_confidence,
    )


def _as_day(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def bounded_series_by_metric(
    rows: Iterable[MetricRow],
    start: date | datetime,
    end: date | datetime,
    resolver: AliasResolver | None = None,
    device: str | DeviceFilter | None = DeviceFilter.ALL,
    strict: bool = False,
) -> dict[str, list[SeriesPoint]]:
    """Daily series for every canonical metric present in ``rows``.

    Days are taken from ``measured_at`` and kept when
    ``start <= day < end``. Each day collapses to its maximum value.

    Raises:
        ValueError: if ``start`` is after ``end``.
    """
    start_day, end_day = _as_day(start), _as_day(end)
    if start_day > end_day:
        raise ValueError(
            f"Series start {start_day.isoformat()} is after end {end_day.isoformat()}"
        )

    selected = parse_device_filter(device, strict=strict)
    in_range = [
        row
        for row in filter_by_device(usable_rows(rows), selected)
        if start_day <= row.day < end_day
    ]

    series: dict[str, list[SeriesPoint]] = {}
    for name, days in group_by_metric_and_day(in_range, resolver).items():
        points = []
        for day in sorted(days):
            winner = reduce_rows(days[day], ReductionMode.DAILY_MAX)
            if winner is not None:
                points.append(SeriesPoint(date=day.isoformat(), value=winner.value))
        series[name] = points
    return series


def bounded_series(
    rows: Iterable[MetricRow],
    metric_name: str,
    start: date | datetime,
    end: date | datetime,
    resolver: AliasResolver | None = None,
    device: str | DeviceFilter | None = DeviceFilter.ALL,
    strict: bool = False,
) -> list[SeriesPoint]:
    """Chronological daily series for one metric (any of its aliases).

    Args:
        rows: Batch of rows in any order.
        metric_name: Any name of the metric; aliases are merged.
        start: First day included.
        end: First day excluded.
        resolver: Alias resolver (default: built-in table).
        device: Optional source filter.
        strict: Reject unknown device filters instead of showing all.

    Returns:
        At most one SeriesPoint per calendar day, oldest first.
    """
    resolver = resolver or DEFAULT_RESOLVER
    acceptable = resolver.resolve_alias_set(metric_name)
    matching = [row for row in rows if row.metric_name in acceptable]
    series = bounded_series_by_metric(
        matching, start, end, resolver=resolver, device=device, strict=strict
    )
    return series.get(resolver.canonical_name(metric_name), [])
