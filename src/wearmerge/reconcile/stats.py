"""Summary statistics over a bounded daily series."""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from typing import Any, Sequence

import numpy as np

from wearmerge.reconcile.models import SeriesPoint


@dataclass
class SeriesStats:
    """Aggregate view of a daily series."""

    count: int = 0
    mean: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    latest: float | None = None
    latest_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __repr__(self) -> str:
        return (
            f"SeriesStats(n={self.count}, mean={self.mean:.1f}, "
            f"min={self.minimum:.1f}, max={self.maximum:.1f}, "
            f"latest={self.latest})"
        )


def summarize_series(points: Sequence[SeriesPoint]) -> SeriesStats:
    """Count, mean, min, max and the most recent value of a series.

    Points are expected oldest first, as produced by
    :func:`~wearmerge.reconcile.views.bounded_series`. An empty series
    yields zeros and no latest value.
    """
    if len(points) == 0:
        return SeriesStats()

    arr = np.asarray([p.value for p in points], dtype=np.float64)
    return SeriesStats(
        count=len(points),
        mean=round(float(np.mean(arr)), 2),
        minimum=float(np.min(arr)),
        maximum=float(np.max(arr)),
        latest=points[-1].value,
        latest_date=points[-1].date,
    )
