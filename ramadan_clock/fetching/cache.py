from __future__ import annotations

import logging

from ramadan_clock.core.models import PrayerTimeEntry


class ResultCache:
    """Run-scoped memo of normalized entries, keyed by opaque strings.

    No TTL and no size bound; ``clear()`` is the only eviction.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[PrayerTimeEntry]] = {}
        self.hits = 0
        self.misses = 0
        self._logger = logging.getLogger("ramadan.cache")

    def get(self, key: str) -> list[PrayerTimeEntry] | None:
        cached = self._entries.get(key)
        if cached is None:
            self.misses += 1
            return None
        self.hits += 1
        return list(cached)

    def set(self, key: str, entries: list[PrayerTimeEntry]) -> None:
        self._entries[key] = list(entries)

    def clear(self) -> int:
        cleared = len(self._entries)
        self._entries.clear()
        self._logger.info("Result cache cleared (%d keys)", cleared)
        return cleared

    def stats(self) -> dict:
        return {
            "size": len(self._entries),
            "keys": list(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }

    def __len__(self) -> int:
        return len(self._entries)
