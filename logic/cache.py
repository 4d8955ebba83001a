"""Daily response cache for paid upstream calls.

Entries expire at the next UTC midnight, so a given key costs at most one
upstream call per UTC day. The cache is owned by the application and
injected into the services that use it.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional
from loguru import logger

from logic.formatting import utc_now


Clock = Callable[[], datetime]


def next_utc_midnight(now: datetime) -> datetime:
    """Start of the UTC day after ``now``."""
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc) + timedelta(days=1)


class DailyCache:
    """In-memory key/value cache that clears at UTC midnight.

    Single event loop, no locking. Concurrent misses on the same key may
    both reach the upstream.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now
        self._entries: dict[str, tuple[datetime, Any]] = {}
        self._hits = 0
        self._misses = 0

        logger.info("DailyCache initialized")

    def get(self, key: str) -> Optional[Any]:
        """Cached value for key, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        """Store value until the next UTC midnight."""
        self._entries[key] = (next_utc_midnight(self._clock()), value)

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value, or await ``fetch`` and cache its result.

        Exceptions from ``fetch`` propagate and nothing is cached.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"Daily cache hit: {key}")
            return cached

        value = await fetch()
        self.set(key, value)
        return value

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
        }
