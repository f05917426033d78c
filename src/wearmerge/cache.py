"""Cache for built views, kept outside the pure reconciliation core.

The core recomputes from whatever batch it is handed. Callers that want to
avoid rebuilding a view on every read wrap the builder with
:meth:`ViewCache.get_or_build` and call :meth:`ViewCache.invalidate` when
new rows arrive for the affected keys.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Hashable, Iterable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class ViewCache:
    """TTL cache of built views keyed by caller-chosen keys.

    Args:
        ttl_seconds: How long an entry stays valid. ``None`` = until invalidated.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float | None = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self._lookup(key) is not _MISSING

    def _expired(self, stored_at: float, now: float) -> bool:
        return self._ttl is not None and now - stored_at > self._ttl

    def _lookup(self, key: Hashable) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        stored_at, value = entry
        if self._expired(stored_at, self._clock()):
            del self._entries[key]
            return _MISSING
        return value

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns entries removed."""
        if self._ttl is None:
            return 0
        now = self._clock()
        stale = [k for k, (stored_at, _) in self._entries.items()
                 if self._expired(stored_at, now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def put(self, key: Hashable, value: Any) -> None:
        self.purge_expired()
        self._entries[key] = (self._clock(), value)

    def get_or_build(self, key: Hashable, builder: Callable[[], Any]) -> Any:
        """Return the cached view for ``key``, building and storing it if absent."""
        value = self._lookup(key)
        if value is _MISSING:
            value = builder()
            self.put(key, value)
        return value

    def invalidate(self, keys: Iterable[Hashable] | None = None) -> int:
        """Drop ``keys`` (or everything when None). Returns entries removed."""
        if keys is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            removed = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
        logger.debug("Invalidated %d cached view(s)", removed)
        return removed


_MISSING = object()
