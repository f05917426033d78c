"""Metric-name alias resolution.

Different vendors report the same signal under different labels (Whoop's
"Day Strain" vs another provider's "Activity Score"). The alias table
declares, per key, the names that should be merged with it. Declarations
may be one-directional or split across several keys, so the resolver
closes the table: two names are equivalent when any chain of declarations
links them, in either direction.

Lookups are exact, case-sensitive string matches.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from wearmerge.reconcile.models import AliasTableError


# Declaration order matters: the first key of an equivalence class is the
# canonical name reported by the views.
METRIC_ALIASES: dict[str, list[str]] = {
    "Day Strain": ["Strain", "Activity Score"],
    "Workout Strain": ["Training Strain"],
    "Recovery Score": ["Recovery"],
    "HRV RMSSD": ["HRV"],
    "Sleep HRV RMSSD": ["Sleep HRV"],
    "Resting Heart Rate": ["Resting HR", "RHR"],
    "Average Heart Rate": ["Avg Heart Rate"],
    "Max Heart Rate": ["Maximum Heart Rate"],
    "Sleep Duration": ["Total Sleep", "Sleep Time"],
    "Sleep Efficiency": ["Sleep Performance"],
    "Sleep Score": ["Sleep Quality Score"],
    "Steps": ["Step Count", "Daily Steps"],
    "Active Calories": ["Calories Burned", "Active Energy"],
    "Distance": ["Walking Distance"],
    "VO2 Max": ["VO2Max"],
    "Weight": ["Body Weight"],
    "Body Fat Percentage": ["Body Fat", "Fat Ratio"],
    "Respiratory Rate": ["Breathing Rate"],
    "Body Temperature": ["Skin Temperature"],
    # Declared from the vendor side only.
    "Calories Burned": ["Total Calories"],
}


class AliasResolver:
    """Resolve metric names to their equivalence classes.

    Args:
        table: Mapping of metric name -> list of alias names. Defaults to
            :data:`METRIC_ALIASES`. The table is copied; later edits to it
            have no effect on the resolver.
    """

    def __init__(self, table: Mapping[str, Sequence[str]] | None = None) -> None:
        if table is None:
            table = METRIC_ALIASES
        _validate_table(table)

        # Union-find over every name mentioned in the table.
        parent: dict[str, str] = {}

        def find(name: str) -> str:
            parent.setdefault(name, name)
            while parent[name] != name:
                parent[name] = parent[parent[name]]
                name = parent[name]
            return name

        def union(a: str, b: str) -> None:
            ra, rb = find(a), find(b)
            if ra != rb:
                parent[rb] = ra

        for key, aliases in table.items():
            find(key)
            for alias in aliases:
                union(key, alias)

        members: dict[str, set[str]] = {}
        for name in parent:
            members.setdefault(find(name), set()).add(name)

        # Canonical = first declared key of each class.
        canonical_by_root: dict[str, str] = {}
        for key in table:
            canonical_by_root.setdefault(find(key), key)

        self._classes: dict[str, frozenset[str]] = {}
        self._canonical: dict[str, str] = {}
        for root, names in members.items():
            group = frozenset(names)
            for name in names:
                self._classes[name] = group
                self._canonical[name] = canonical_by_root[root]

    def resolve_alias_set(self, metric_name: str) -> frozenset[str]:
        """Return ``metric_name`` plus every name equivalent to it.

        Unknown names resolve to the singleton set of themselves.
        """
        return self._classes.get(metric_name, frozenset((metric_name,)))

    def canonical_name(self, metric_name: str) -> str:
        """Name used to key reconciled output for ``metric_name``'s class."""
        return self._canonical.get(metric_name, metric_name)

    def same_metric(self, a: str, b: str) -> bool:
        return self.canonical_name(a) == self.canonical_name(b)

    def expand_metric_names(self, metric_names: Iterable[str]) -> list[str]:
        """Sorted union of the alias sets of ``metric_names``.

        This is the name list a storage query needs (``metric_name IN (...)``)
        so that rows reported under any alias are fetched.
        """
        expanded: set[str] = set()
        for name in metric_names:
            expanded |= self.resolve_alias_set(name)
        return sorted(expanded)


def _validate_table(table: object) -> None:
    if not isinstance(table, Mapping):
        raise AliasTableError(
            f"Alias table must be a mapping, got {type(table).__name__}"
        )
    for key, aliases in table.items():
        if not isinstance(key, str):
            raise AliasTableError(f"Alias key must be a string, got {key!r}")
        if isinstance(aliases, str) or not isinstance(aliases, Sequence):
            raise AliasTableError(
                f"Aliases for {key!r} must be a list of strings, got {aliases!r}"
            )
        for alias in aliases:
            if not isinstance(alias, str):
                raise AliasTableError(
                    f"Alias of {key!r} must be a string, got {alias!r}"
                )


def load_alias_table(path: str | Path) -> dict[str, list[str]]:
    """Load an alias table from a JSON object of ``name -> [aliases]``."""
    try:
        with open(path) as f:
            table = json.load(f)
    except json.JSONDecodeError as e:
        raise AliasTableError(f"Invalid JSON in alias table {path}: {e}") from e
    _validate_table(table)
    return {key: list(aliases) for key, aliases in table.items()}


DEFAULT_RESOLVER = AliasResolver()


def resolve_alias_set(metric_name: str) -> frozenset[str]:
    """Resolve ``metric_name`` against the built-in alias table."""
    return DEFAULT_RESOLVER.resolve_alias_set(metric_name)
