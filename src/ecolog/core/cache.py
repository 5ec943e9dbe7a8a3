"""
Bounded key/value cache with LRU eviction and TTL expiry.

Every layer of the masking pipeline memoizes through one of these caches.
Expiry is enforced lazily on read; an optional background sweep removes
expired entries early to keep memory tight but is never needed for
correctness.
"""

import logging
import sys
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

from .errors import CacheConfigError


logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class CacheEntry:
    """A single cached value with its bookkeeping timestamps (seconds)."""
    key: Hashable
    value: Any
    inserted_at: float
    last_accessed_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


def _check_interval(name: str, value: Optional[int]):
    if value is not None and value <= 0:
        raise CacheConfigError(f"{name} must be a positive number of milliseconds, got {value!r}")


class LRUCache:
    """
    Least-recently-used cache with optional time-to-live.

    Args:
        capacity: Maximum number of entries (must be positive)
        ttl_ms: Default time-to-live for new entries, None for no expiry
        cleanup_interval_ms: Period of the background expiry sweep
        auto_cleanup: Run the background sweep when an interval is set
        enable_stats: Count hits, misses, evictions and expirations
        clock: Monotonic time source in seconds
        name: Label used in log records
    """

    def __init__(
        self,
        capacity: int,
        ttl_ms: Optional[int] = None,
        cleanup_interval_ms: Optional[int] = None,
        auto_cleanup: bool = False,
        enable_stats: bool = True,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity <= 0:
            raise CacheConfigError(f"Cache capacity must be a positive integer, got {capacity!r}")
        _check_interval("ttl_ms", ttl_ms)
        _check_interval("cleanup_interval_ms", cleanup_interval_ms)

        self.capacity = capacity
        self.name = name
        self.ttl_ms = ttl_ms
        self.cleanup_interval_ms = cleanup_interval_ms
        self.auto_cleanup = auto_cleanup
        self.enable_stats = enable_stats

        self._clock = clock
        self._entries: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._reset_stats()
        self._start_sweep()

    def _reset_stats(self):
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: Hashable) -> Any:
        """
        Look up a key.

        Returns:
            The cached value, or None when absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()

            if entry is None:
                if self.enable_stats:
                    self._misses += 1
                return None

            if entry.is_expired(now):
                del self._entries[key]
                if self.enable_stats:
                    self._misses += 1
                    self._expirations += 1
                return None

            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            if self.enable_stats:
                self._hits += 1
            return entry.value

    def put(self, key: Hashable, value: Any, ttl_ms: Optional[int] = None):
        """
        Insert or overwrite a key, evicting the least-recently-used entry
        when the cache grows past capacity.

        Args:
            key: Cache key
            value: Value to store
            ttl_ms: Per-entry time-to-live overriding the cache default
        """
        _check_interval("ttl_ms", ttl_ms)
        with self._lock:
            now = self._clock()
            ttl = ttl_ms if ttl_ms is not None else self.ttl_ms
            expires_at = now + ttl / 1000.0 if ttl is not None else None

            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                inserted_at=now,
                last_accessed_at=now,
                expires_at=expires_at,
            )
            self._entries.move_to_end(key)

            if len(self._entries) > self.capacity:
                evicted_key, _ = self._entries.popitem(last=False)
                if self.enable_stats:
                    self._evictions += 1
                logger.debug("%s: evicted %r", self.name, evicted_key)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def cleanup_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            if self.enable_stats:
                self._expirations += len(expired)

        if expired:
            logger.debug("%s: swept %d expired entries", self.name, len(expired))
        return len(expired)

    def clear(self):
        """Drop all entries and reset statistics. The sweep keeps running."""
        with self._lock:
            self._entries.clear()
            self._reset_stats()

    def shutdown(self):
        """Stop the background sweep and clear. Safe to call repeatedly."""
        self._stop_sweep()
        self.clear()

    def configure(
        self,
        ttl_ms=_UNSET,
        cleanup_interval_ms=_UNSET,
        auto_cleanup=_UNSET,
        enable_stats=_UNSET,
    ):
        """
        Merge runtime settings without dropping existing entries.

        Only the options passed are changed. A changed TTL applies to entries
        inserted afterwards.
        """
        if ttl_ms is not _UNSET:
            _check_interval("ttl_ms", ttl_ms)
            self.ttl_ms = ttl_ms
        if cleanup_interval_ms is not _UNSET:
            _check_interval("cleanup_interval_ms", cleanup_interval_ms)
            self.cleanup_interval_ms = cleanup_interval_ms
        if auto_cleanup is not _UNSET:
            self.auto_cleanup = bool(auto_cleanup)
        if enable_stats is not _UNSET:
            self.enable_stats = bool(enable_stats)

        self._stop_sweep()
        self._start_sweep()

    @property
    def sweep_active(self) -> bool:
        return self._timer is not None

    def _start_sweep(self):
        if not self.auto_cleanup or not self.cleanup_interval_ms:
            return

        timer = threading.Timer(self.cleanup_interval_ms / 1000.0, self._run_sweep)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _stop_sweep(self):
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()

    def _run_sweep(self):
        if self._timer is None:
            return
        self.cleanup_expired()
        if self._timer is not None:
            self._start_sweep()

    def get_stats(self) -> Dict[str, int]:
        return {
            'hits': self._hits,
            'misses': self._misses,
            'evictions': self._evictions,
            'expirations': self._expirations,
        }

    def get_hit_ratio(self) -> float:
        total = self._hits + self._misses
        if total == 0:
            return 0.0
        return self._hits / total

    def get_size(self) -> int:
        return len(self._entries)

    def get_memory_usage(self) -> int:
        """Approximate size in bytes of the stored keys and values (shallow)."""
        with self._lock:
            return sum(
                sys.getsizeof(key) + sys.getsizeof(entry.value)
                for key, entry in self._entries.items()
            )
