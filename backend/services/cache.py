"""Simple in-memory TTL cache with a background sweeper. No Redis needed.

Note: Each uvicorn worker has its own cache instance. With --workers 2,
a page may be rendered twice (once per worker). Entries are never shared or
invalidated across processes; staleness is bounded by the TTL alone.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60


class TTLCache:
    """Key -> value map where every entry carries an absolute expiry.

    Reads check the expiry themselves, so correctness never depends on when
    the sweeper last ran. The lock only protects the dict; nothing blocks
    while holding it.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._store: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() < expires_at:
                return value
            del self._store[key]
        return None

    def set(self, key: str, value: Any, ttl_seconds: float = 60) -> None:
        with self._lock:
            self._store[key] = (self._clock() + ttl_seconds, value)

    def delete_expired(self, now: float | None = None) -> int:
        """Drop every entry with expires_at <= now. Returns how many were removed."""
        if now is None:
            now = self._clock()
        with self._lock:
            expired = [key for key, (expires_at, _) in self._store.items() if expires_at <= now]
            for key in expired:
                del self._store[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class CacheSweeper:
    """Periodically removes expired entries to bound memory."""

    def __init__(self, cache: TTLCache, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS):
        self._cache = cache
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        removed = self._cache.delete_expired()
        if removed:
            logger.info("Cache sweep removed %d expired entries (%d left)", removed, len(self._cache))
        else:
            logger.debug("Cache sweep found nothing to remove")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Cache sweep failed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="cache-sweeper")
        logger.info("Cache sweeper started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache sweeper stopped")
