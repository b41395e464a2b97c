"""In-process TTL cache with in-flight request coalescing.

Every outbound call in this package goes through ``TTLCache.get_or_fetch``.
Guarantees:

  * a live (non-expired) entry is returned without invoking the fetcher
  * at most one fetch is outstanding per key; concurrent callers for the same
    key await the same pending result
  * failures are never memoized and clear the in-flight marker
  * a caller cancelling its own await does not cancel the shared fetch

Expiration is enforced on read. ``sweep()`` only bounds memory by evicting
entries older than twice their TTL and may run at any time.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Generic, Iterable, Optional, TypeVar

from .logging import get_logger
from .provider_metrics import record_cache_lookup

logger = get_logger(__name__)

V = TypeVar("V")

_MISSING = object()


@dataclass
class CacheEntry(Generic[V]):
    """Cached value with its creation and expiry timestamps (clock seconds)."""
    key: str
    value: V
    created_at: float
    expires_at: float
    ttl: float

    def is_live(self, now: float) -> bool:
        return now <= self.expires_at


class CacheKeys:
    """Canonical cache keys for every cached entity type."""

    @staticmethod
    def symbols(symbols: Iterable[str]) -> str:
        """Sorted, de-duplicated, upper-cased symbol list."""
        return ",".join(sorted({s.strip().upper() for s in symbols if s and s.strip()}))

    @staticmethod
    def quote(symbol: str) -> str:
        return f"quote:{symbol.strip().upper()}"

    @staticmethod
    def symbol_search(query: str) -> str:
        return f"symbol_search:{normalize_query(query)}"

    @staticmethod
    def validation(symbol: str) -> str:
        return f"validation:{symbol.strip().upper()}"

    @staticmethod
    def company_news(symbol: str, start: date, end: date) -> str:
        return f"news:company:{symbol.strip().upper()}:{start.isoformat()}:{end.isoformat()}"

    @staticmethod
    def market_news(start: date, end: date) -> str:
        return f"news:market:{start.isoformat()}:{end.isoformat()}"


def normalize_query(query: str) -> str:
    """Lower-cased, whitespace-collapsed free-text query."""
    return " ".join(query.lower().split())


class TTLCache(Generic[V]):
    """Keyed TTL cache with single-flight fetches."""

    def __init__(
        self,
        name: str,
        default_ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._stats = {
            'hits': 0,
            'misses': 0,
            'fetches': 0,
            'coalesced': 0,
            'evictions': 0,
            'errors': 0,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default``."""
        entry = self._entries.get(key)
        if entry is None:
            return default
        if not entry.is_live(self._clock()):
            # Expired entries are never served
            del self._entries[key]
            return default
        return entry.value

    def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        """Replace the entry for ``key`` wholesale."""
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key, value=value, created_at=now, expires_at=now + ttl, ttl=ttl
        )

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def is_inflight(self, key: str) -> bool:
        return key in self._inflight

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[V]],
        ttl: Optional[float] = None,
    ) -> V:
        """Return the cached value for ``key``, fetching it at most once concurrently."""
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            self._stats['hits'] += 1
            record_cache_lookup(self.name, 'hit')
            return value

        task = self._inflight.get(key)
        if task is not None:
            self._stats['coalesced'] += 1
            record_cache_lookup(self.name, 'coalesced')
            logger.debug("Joining in-flight fetch", cache=self.name, key=key)
        else:
            self._stats['misses'] += 1
            self._stats['fetches'] += 1
            record_cache_lookup(self.name, 'miss')
            task = asyncio.ensure_future(self._fetch_and_store(key, fetcher, ttl))
            task.add_done_callback(self._consume_exception)
            self._inflight[key] = task

        # shield: a cancelled caller must not cancel a fetch other waiters need
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[V]],
        ttl: Optional[float],
    ) -> V:
        try:
            value = await fetcher()
        except Exception as e:
            self._stats['errors'] += 1
            logger.debug("Fetch failed, not caching", cache=self.name, key=key, error=str(e))
            raise
        else:
            self.set(key, value, ttl)
            return value
        finally:
            self._inflight.pop(key, None)

    @staticmethod
    def _consume_exception(task: asyncio.Task) -> None:
        # Marks the exception retrieved when every waiter went away
        if not task.cancelled():
            task.exception()

    def sweep(self) -> int:
        """Evict entries whose age exceeds twice their TTL."""
        now = self._clock()
        stale = [
            key for key, entry in self._entries.items()
            if now - entry.created_at > entry.ttl * 2
        ]
        for key in stale:
            del self._entries[key]
        self._stats['evictions'] += len(stale)
        if stale:
            logger.debug("Cache sweep evicted entries", cache=self.name, evicted=len(stale))
        return len(stale)

    def stats(self) -> Dict[str, Any]:
        """Cache statistics."""
        return {
            'name': self.name,
            'size': len(self._entries),
            'inflight': len(self._inflight),
            **self._stats,
        }
