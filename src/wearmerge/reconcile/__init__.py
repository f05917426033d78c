"""Reconciliation core for multi-source wearable metrics.

Modules:
    models   -- MetricRow, ReconciledMetric, enums and errors
    aliases  -- Metric-name equivalence classes
    reducer  -- Priority/recency, daily-max and confidence-based reduction policies
    views    -- Latest-per-metric, device-filtered and bounded-series views
    sources  -- Per-source breakdown with freshness and outlier flags
    stats    -- Series summary statistics
"""

from wearmerge.reconcile.models import (
    DeviceFilter,
    ReductionMode,
    MetricRow,
    ReconciledMetric,
    SeriesPoint,
    ReconcileError,
    MalformedRowError,
    UnknownDeviceFilterError,
    AliasTableError,
)
from wearmerge.reconcile.aliases import (
    METRIC_ALIASES,
    AliasResolver,
    load_alias_table,
    resolve_alias_set,
)
from wearmerge.reconcile.reducer import (
    pick_latest,
    pick_daily_max,
    pick_highest_confidence,
    pick_average,
    pick_median,
    pick_most_recent,
    pick_manual_override,
    reduce_rows,
    usable_rows,
)
from wearmerge.reconcile.views import (
    parse_device_filter,
    latest_per_metric,
    device_filtered_latest,
    bounded_series,
    bounded_series_by_metric,
)
from wearmerge.reconcile.sources import (
    source_breakdown,
    detect_outliers,
    SourceBreakdown,
    SourceEntry,
)
from wearmerge.reconcile.stats import summarize_series, SeriesStats

__all__ = [
    # models
    "DeviceFilter",
    "ReductionMode",
    "MetricRow",
    "ReconciledMetric",
    "SeriesPoint",
    "ReconcileError",
    "MalformedRowError",
    "UnknownDeviceFilterError",
    "AliasTableError",
    # aliases
    "METRIC_ALIASES",
    "AliasResolver",
    "load_alias_table",
    "resolve_alias_set",
    # reducer
    "pick_latest",
    "pick_daily_max",
    "pick_highest_confidence",
    "pick_average",
    "pick_median",
    "pick_most_recent",
    "pick_manual_override",
    "reduce_rows",
    "usable_rows",
    # views
    "parse_device_filter",
    "latest_per_metric",
    "device_filtered_latest",
    "bounded_series",
    "bounded_series_by_metric",
    # sources
    "source_breakdown",
    "detect_outliers",
    "SourceBreakdown",
    "SourceEntry",
    # stats
    "summarize_series",
    "SeriesStats",
]
