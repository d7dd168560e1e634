"""
Daily sales cache.

Memoises today's sales per (child, institution). The whole cache is
cleared when its TTL window expires or when the local calendar day
changes; writes must call `invalidate_todays_sales_cache()` explicitly.
"""

import threading
import time
from typing import Callable, Dict, Hashable, Optional

import structlog
from django.conf import settings
from django.utils import timezone

from .data_source import CafeDataSource, get_data_source
from .exceptions import DataSourceError
from .local_day import local_day_range
from .records import SalesLookup


logger = structlog.get_logger(__name__)


class TodaysSalesCache:
    """
    Key/value cache with one coarse expiry window for all keys.

    Args:
        ttl_seconds: Lifetime of the window; every key is dropped once it passes
        clock: Monotonic seconds source
        today: Returns the current local date; a new date clears the cache
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        today: Callable = timezone.localdate
    ):
        if ttl_seconds is None:
            ttl_seconds = settings.FLANGO['SALES_CACHE_TTL_SECONDS']
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._today = today
        self._entries: Dict[Hashable, SalesLookup] = {}
        self._window_started: Optional[float] = None
        self._window_day = None
        self._lock = threading.Lock()
        self._inflight: Dict[Hashable, threading.Lock] = {}

    def _expire_window(self):
        now = self._clock()
        today = self._today()
        if self._window_started is None:
            self._window_started, self._window_day = now, today
            return
        if now - self._window_started > self.ttl_seconds or today != self._window_day:
            if self._entries:
                logger.debug("sales_cache_cleared", entries=len(self._entries), day_changed=today != self._window_day)
            self._entries.clear()
            self._window_started, self._window_day = now, today

    def get(self, key):
        with self._lock:
            self._expire_window()
            return self._entries.get(key)

    def set(self, key, value: SalesLookup):
        with self._lock:
            self._expire_window()
            self._entries[key] = value

    def get_or_fetch(self, key, fetch: Callable[[], SalesLookup]) -> SalesLookup:
        """
        Return the cached entry or call `fetch` once per key.

        Concurrent callers for the same key wait for the first fetch.
        Lookups that carry an error are returned but not stored.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        with self._lock:
            key_lock = self._inflight.setdefault(key, threading.Lock())

        with key_lock:
            cached = self.get(key)
            if cached is not None:
                return cached
            result = fetch()
            if result.error is None:
                self.set(key, result)

        with self._lock:
            self._inflight.pop(key, None)
        return result

    def invalidate(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_all(self):
        with self._lock:
            self._entries.clear()
            self._window_started = None
            self._window_day = None

    def __contains__(self, key):
        return self.get(key) is not None

    def __len__(self):
        with self._lock:
            return len(self._entries)


_sales_cache: Optional[TodaysSalesCache] = None


def get_sales_cache() -> TodaysSalesCache:
    global _sales_cache
    if _sales_cache is None:
        _sales_cache = TodaysSalesCache()
    return _sales_cache


def invalidate_todays_sales_cache():
    """Drop every cached lookup. Call after a sale, undo, deposit or balance edit."""
    get_sales_cache().invalidate_all()


def get_todays_sales_for_child(
    child_id,
    institution_id=None,
    *,
    data_source: Optional[CafeDataSource] = None,
    cache: Optional[TodaysSalesCache] = None
) -> SalesLookup:
    """
    Today's completed sales for a child, served from the cache when fresh.

    The institution is resolved from the child profile when not given.
    Data source failures come back in `SalesLookup.error`.
    """
    if not child_id:
        return SalesLookup()

    data_source = data_source or get_data_source()
    if cache is None:
        cache = get_sales_cache()

    try:
        if not institution_id:
            child = data_source.get_child_profile(child_id)
            institution_id = child.institution_id if child else None
    except DataSourceError as exc:
        logger.warning("child_profile_lookup_failed", child_id=str(child_id), error=str(exc))
        return SalesLookup(error=str(exc))

    def fetch() -> SalesLookup:
        start, end = local_day_range()
        try:
            rows = data_source.list_todays_sales(
                child_id=str(child_id),
                start=start,
                end=end,
                institution_id=institution_id,
            )
        except DataSourceError as exc:
            logger.warning("todays_sales_lookup_failed", child_id=str(child_id), error=str(exc))
            return SalesLookup(error=str(exc))
        return SalesLookup(rows=list(rows))

    return cache.get_or_fetch(f"{child_id}:{institution_id or ''}", fetch)
