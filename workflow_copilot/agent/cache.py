"""ResultCache — bounded in-memory LRU cache with per-entry TTL.

Holds ParsedIntent results keyed by the normalized request text so a repeat
request within the TTL window skips the whole pipeline.

Eviction is LRU, not FIFO: the backing OrderedDict is kept in recency order
(oldest first). A hit or a store moves the key to the most-recently-used end;
eviction pops from the front.

Expired entries are purged lazily on lookup (or on demand via
clear_expired()); there is no background sweep.

Every operation is synchronous. Callers may be async, but nothing here awaits
between reading and mutating the LRU bookkeeping, so a single event loop needs
no locking.

Key policy: normalize_cache_key() lowercases, trims and collapses internal
whitespace to "_". Requests that differ only in case or spacing deliberately
share one entry.
"""

from __future__ import annotations

import copy
import logging
import re
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("workflow_copilot.agent.cache")

DEFAULT_MAX_SIZE = 100
DEFAULT_TTL_SECONDS = 300.0

_WHITESPACE = re.compile(r"\s+")


def normalize_cache_key(text: str) -> str:
    """'  Scrape  THIS page ' → 'scrape_this_page'."""
    return _WHITESPACE.sub("_", text.lower().strip())


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    ttl: float
    last_accessed: float
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache performance. Ages are whole seconds."""

    size: int
    max_size: int
    hit_rate: float
    hits: int
    misses: int
    evictions: int
    total_requests: int
    average_access_count: float
    oldest_entry_age: int
    newest_entry_age: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "maxSize": self.max_size,
            "hitRate": self.hit_rate,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "totalRequests": self.total_requests,
            "averageAccessCount": self.average_access_count,
            "oldestEntryAge": self.oldest_entry_age,
            "newestEntryAge": self.newest_entry_age,
        }


class ResultCache:
    """LRU + TTL cache with hit/miss/eviction accounting.

    Values are deep-copied on store and on lookup, so callers never hold a
    reference to a cached object.

    clock is injectable (seconds, monotonic) for deterministic tests.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def lookup(self, key: str) -> Any:
        """Return a copy of the cached value, or None on a miss."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self._misses += 1
            logger.debug("[CACHE] Expired entry purged: %s", key)
            return None

        self._hits += 1
        entry.last_accessed = now
        entry.access_count += 1
        self._entries.move_to_end(key)
        return copy.deepcopy(entry.value)

    def store(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Insert or overwrite key; the key becomes most-recently-used."""
        if value is None:
            raise ValueError("None cannot be cached (it is the miss marker)")
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()

        now = self._clock()
        self._entries[key] = CacheEntry(
            value=copy.deepcopy(value),
            created_at=now,
            ttl=self.default_ttl if ttl is None else ttl,
            last_accessed=now,
        )
        self._entries.move_to_end(key)

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        key, _ = self._entries.popitem(last=False)
        self._evictions += 1
        logger.info("[CACHE] LRU eviction: %s", key)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("[CACHE] Cleared %d expired entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("[CACHE] Cache cleared")

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        """Keys in recency order, least-recently-used first."""
        return list(self._entries)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def _live(self, now: float) -> list[tuple[str, CacheEntry]]:
        return [(k, e) for k, e in self._entries.items() if not e.is_expired(now)]

    def stats(self) -> CacheStats:
        """Snapshot over live entries; expired ones are skipped, not purged."""
        total = self._hits + self._misses
        hit_rate = self._hits / total if total else 0.0
        now = self._clock()
        live = [e for _, e in self._live(now)]
        size = len(live)

        if size:
            avg_access = sum(e.access_count for e in live) / size
            oldest = min(e.created_at for e in live)
            newest = max(e.created_at for e in live)
            oldest_age = int(now - oldest)
            newest_age = int(now - newest)
        else:
            avg_access = 0.0
            oldest_age = newest_age = 0

        return CacheStats(
            size=size,
            max_size=self.max_size,
            hit_rate=round(hit_rate, 4),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            total_requests=total,
            average_access_count=round(avg_access, 2),
            oldest_entry_age=oldest_age,
            newest_entry_age=newest_age,
        )

    def top_entries(self, limit: int = 10) -> list[dict[str, Any]]:
        """Live entries ordered by access count, most accessed first."""
        now = self._clock()
        ranked = sorted(
            self._live(now),
            key=lambda item: item[1].access_count,
            reverse=True,
        )
        return [
            {"key": key, "accessCount": entry.access_count, "age": int(now - entry.created_at)}
            for key, entry in ranked[:limit]
        ]

    def report(self) -> str:
        """Human-readable performance report."""
        s = self.stats()
        utilization = s.size / s.max_size * 100
        if s.hit_rate >= 0.7:
            efficiency = "Good"
        elif s.hit_rate >= 0.5:
            efficiency = "Fair"
        else:
            efficiency = "Poor"
        memory = "High" if s.size >= s.max_size * 0.9 else "Normal"
        pressure = "High" if s.evictions > s.total_requests * 0.1 else "Normal"
        return "\n".join([
            "Cache Performance Report",
            "========================",
            f"Size: {s.size}/{s.max_size} ({utilization:.1f}% utilized)",
            f"Hit Rate: {s.hit_rate * 100:.2f}%",
            f"Hits: {s.hits}",
            f"Misses: {s.misses}",
            f"Total Requests: {s.total_requests}",
            f"Evictions: {s.evictions}",
            f"Average Access Count: {s.average_access_count}",
            f"Oldest Entry: {s.oldest_entry_age}s ago",
            f"Newest Entry: {s.newest_entry_age}s ago",
            "",
            "Performance:",
            f"- Cache efficiency: {efficiency}",
            f"- Memory usage: {memory}",
            f"- Eviction pressure: {pressure}",
        ])

    def __repr__(self) -> str:
        return f"ResultCache(size={len(self._entries)}, max_size={self.max_size})"
