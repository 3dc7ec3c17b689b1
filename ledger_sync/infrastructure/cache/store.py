"""
Keyed cache store for read-views.

One store per session. Entries are written only when a fetch completes and
are marked stale only through invalidation (or by age). Callers never write
values directly.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ledger_sync.config import settings
from ledger_sync.infrastructure.cache.keys import CacheKey, is_prefix
from ledger_sync.infrastructure.observability.metrics import cache_fetch_counter, cache_invalidation_counter
from ledger_sync.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


@dataclass
class CacheEntry:
    key: CacheKey
    value: Any
    fetched_at: datetime
    stale_after: timedelta
    last_accessed_at: datetime
    invalidated: bool = False

    def is_stale(self, now: datetime) -> bool:
        return self.invalidated or now - self.fetched_at >= self.stale_after


class ViewHandle:
    """A mounted read-view. Closing it discards pending results but never cancels the shared fetch."""

    def __init__(self, store: "CacheStore", key: CacheKey, fetcher: Fetcher, stale_after: Optional[timedelta]):
        self.store = store
        self.key = key
        self.fetcher = fetcher
        self.stale_after = stale_after
        self.closed = False

    async def read(self) -> Any:
        value = await self.store.read(self.key, self.fetcher, self.stale_after)
        return None if self.closed else value

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.store._unobserve(self)


class CacheStore:
    """Process-wide table of read-views keyed by hierarchical tuple"""

    def __init__(
        self,
        stale_after: timedelta | None = None,
        gc_after: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.default_stale_after = stale_after or timedelta(seconds=settings.cache_stale_after_seconds)
        self.gc_after = gc_after or timedelta(seconds=settings.cache_gc_seconds)
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, asyncio.Task] = {}
        self._observers: Dict[CacheKey, List[ViewHandle]] = {}
        # First fetches invalidated before they landed
        self._dirty: Set[CacheKey] = set()

    # Reads

    def get_entry(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def peek(self, key: CacheKey) -> Any:
        entry = self._entries.get(key)
        return entry.value if entry else None

    def is_fetching(self, key: CacheKey) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    async def read(self, key: CacheKey, fetcher: Fetcher, stale_after: timedelta | None = None) -> Any:
        """Serve a fresh entry, or join/start the single in-flight fetch for the key"""
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_accessed_at = now
        # Unused entries without an active view are evicted on the way
        self.collect_garbage()

        if entry is not None and not entry.is_stale(now):
            cache_fetch_counter.labels(result="hit").inc()
            return entry.value

        task = self._fetch(key, fetcher, stale_after)
        return await asyncio.shield(task)

    def observe(self, key: CacheKey, fetcher: Fetcher, stale_after: timedelta | None = None) -> ViewHandle:
        """Register an active view; active views are refetched on invalidation"""
        handle = ViewHandle(self, key, fetcher, stale_after)
        self._observers.setdefault(key, []).append(handle)
        return handle

    def active_keys(self) -> List[CacheKey]:
        return list(self._observers)

    def _unobserve(self, handle: ViewHandle) -> None:
        handles = self._observers.get(handle.key, [])
        if handle in handles:
            handles.remove(handle)
        if not handles:
            self._observers.pop(handle.key, None)

    # Fetch path

    def _fetch(self, key: CacheKey, fetcher: Fetcher, stale_after: timedelta | None) -> asyncio.Task:
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(self._run_fetch(key, fetcher, stale_after))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    def _forget(self, key: CacheKey, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _run_fetch(self, key: CacheKey, fetcher: Fetcher, stale_after: timedelta | None) -> Any:
        try:
            value = await fetcher()
        except Exception:
            cache_fetch_counter.labels(result="error").inc()
            raise

        cache_fetch_counter.labels(result="fetched").inc()
        now = self._clock()
        invalidated = key in self._dirty
        self._dirty.discard(key)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            fetched_at=now,
            stale_after=stale_after or self.default_stale_after,
            last_accessed_at=now,
            invalidated=invalidated,
        )
        if invalidated and key in self._observers:
            # Scheduled past this fetch, so it starts a fresh one
            asyncio.get_running_loop().call_soon(self._refetch, key)
        return value

    def _refetch(self, key: CacheKey) -> Optional[asyncio.Task]:
        handles = self._observers.get(key)
        if not handles:
            return None
        handle = handles[-1]
        task = self._fetch(key, handle.fetcher, handle.stale_after)
        task.add_done_callback(self._log_background_failure)
        return task

    @staticmethod
    def _log_background_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Background refetch failed: %s", error, extra={"error_type": type(error).__name__})

    # Invalidation

    def invalidate(self, prefix: CacheKey) -> List[CacheKey]:
        """
        Mark every entry under prefix stale and refetch the active ones.

        Re-invalidating an entry that is already marked stale is a no-op, so no
        duplicate fetch is triggered. Returns the keys newly invalidated.
        """
        newly_invalidated: List[CacheKey] = []
        candidates = set(self._entries) | set(self._inflight)

        for key in candidates:
            if not is_prefix(prefix, key):
                continue

            entry = self._entries.get(key)
            if entry is not None:
                if entry.invalidated:
                    continue
                entry.invalidated = True
                if self.is_fetching(key):
                    # Fetch started before the commit; its result lands stale
                    self._dirty.add(key)
            elif key in self._dirty or not self.is_fetching(key):
                continue
            else:
                self._dirty.add(key)

            newly_invalidated.append(key)
            if key in self._observers and not self.is_fetching(key):
                self._refetch(key)

        if newly_invalidated:
            cache_invalidation_counter.inc(len(newly_invalidated))
        return newly_invalidated

    async def refetch_active(self) -> int:
        """
        Reconciliation pass: mark everything stale and refetch every active view.

        Refetch failures are logged; the entries stay stale for the next read.
        """
        for entry in self._entries.values():
            entry.invalidated = True
        for key in list(self._inflight):
            if self.is_fetching(key):
                # Started before reconciliation; its result lands stale
                self._dirty.add(key)
        cache_invalidation_counter.inc(len(self._entries))

        tasks = [t for t in (self._refetch(key) for key in self.active_keys()) if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    # Lifecycle

    def remove(self, key: CacheKey) -> None:
        """Drop an entry so the next read starts from scratch (manual retry)"""
        self._entries.pop(key, None)
        self._dirty.discard(key)

    def collect_garbage(self) -> int:
        """Evict entries without active views that have not been read for gc_after"""
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if key not in self._observers and now - entry.last_accessed_at >= self.gc_after
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def settle(self) -> None:
        """Wait until no fetch is in flight"""
        while any(not t.done() for t in self._inflight.values()):
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)
            # Let chained refetches scheduled with call_soon start
            await asyncio.sleep(0)

    async def clear(self) -> None:
        for task in list(self._inflight.values()):
            task.cancel()
        if self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)
        self._inflight.clear()
        self._entries.clear()
        self._observers.clear()
        self._dirty.clear()

    def __len__(self) -> int:
        return len(self._entries)
