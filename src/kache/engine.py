"""In-process cache engine.

The engine owns the key -> entry mapping and provides:
- set(), get(), has(), delete(): Core map operations with lazy TTL expiry
- clear_by_tag(), invalidate(), clear_expired(): Group removal
- evict(): One-shot eviction by lru, fifo or random policy
- refresh(): Fetch-then-store with stale-on-error and request coalescing
- stats(), get_age(), is_stale(): Statistics and staleness helpers
- start_cleanup(), stop_cleanup(): Periodic expiry sweep
"""

from __future__ import annotations

import asyncio
import json
import threading
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar, cast

import structlog

from kache.cleanup import CleanupScheduler
from kache.duration import parse_positive_duration
from kache.errors import InvalidOptionsError
from kache.eviction import EvictionPolicy, LRUPolicy, get_policy
from kache.handle import CacheHandle
from kache.keys import KeyPattern, compile_pattern, generate_key, validate_key
from kache.types import CacheEntry, CacheOptions, CacheStats, Duration

T = TypeVar("T")

# Refreshes are only shared between callers asking for the same entry options
_InFlightKey = tuple[str, int, frozenset[str], int]

logger = structlog.get_logger(__name__)

_FALLBACK_POLICY = LRUPolicy()

DEFAULT_TTL = "5m"
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_CLEANUP_INTERVAL = "1m"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _estimate_size(data: Any) -> int:
    """Approximate payload size as the length of its JSON rendering."""
    try:
        return len(json.dumps(data, sort_keys=True, default=str))
    except (TypeError, ValueError, RecursionError):
        return 0


class CacheEngine:
    """Thread-safe in-memory cache with TTL, tags and bounded size."""

    def __init__(
        self,
        *,
        default_ttl: Duration = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        cleanup_interval: Duration = DEFAULT_CLEANUP_INTERVAL,
        eviction_strategy: str | EvictionPolicy = "lru",
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._tag_index: dict[str, set[str]] = {}
        self._total_size = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._lock = threading.RLock()
        self._in_flight: dict[_InFlightKey, asyncio.Future[Any]] = {}
        self._clock = clock or _now_ms

        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.cleanup_interval = cleanup_interval
        self.eviction_strategy = eviction_strategy

        self._last_cleanup = self._clock()
        self._scheduler = CleanupScheduler(self)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def default_ttl(self) -> int:
        """TTL in milliseconds applied when set() gets none."""
        return self._default_ttl

    @default_ttl.setter
    def default_ttl(self, value: Duration) -> None:
        self._default_ttl = parse_positive_duration(value, name="default_ttl")

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @max_entries.setter
    def max_entries(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidOptionsError(
                f"max_entries must be a positive integer, got {value!r}"
            )
        self._max_entries = value

    @property
    def cleanup_interval(self) -> int:
        """Milliseconds between periodic cleanup passes."""
        return self._cleanup_interval

    @cleanup_interval.setter
    def cleanup_interval(self, value: Duration) -> None:
        self._cleanup_interval = parse_positive_duration(
            value, name="cleanup_interval"
        )

    @property
    def eviction_strategy(self) -> str:
        return self._policy.name

    @eviction_strategy.setter
    def eviction_strategy(self, value: str | EvictionPolicy) -> None:
        self._policy = get_policy(value)

    # -------------------------------------------------------------------------
    # Core operations
    # -------------------------------------------------------------------------

    def set(
        self,
        key: str,
        data: Any,
        options: CacheOptions | None = None,
        *,
        ttl: Duration | None = None,
        tags: Iterable[str] | None = None,
        version: int | None = None,
    ) -> None:
        """Store data under key, replacing any previous entry.

        Keyword arguments override the matching fields of options. When a
        new key would push the cache past max_entries, one entry is
        evicted first using the configured strategy.
        """
        validate_key(key)
        ttl_ms, tag_set, version = self._resolve_options(options, ttl, tags, version)
        self._store(key, data, ttl_ms, tag_set, version)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default

            if entry.is_expired(self._clock()):
                self._remove(key)
                self._misses += 1
                return default

            self._hits += 1
            return entry.data

    def has(self, key: str) -> bool:
        """Check for a valid entry without touching counters or the map."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def get_entry(self, key: str) -> CacheEntry[Any] | None:
        """Return the raw entry, expired or not, without touching counters."""
        with self._lock:
            return self._entries.get(key)

    def delete(self, key: str) -> bool:
        """Remove key. Returns whether an entry was removed."""
        with self._lock:
            return self._remove(key) is not None

    def clear(self) -> None:
        """Remove every entry and reset all statistics."""
        with self._lock:
            self._entries.clear()
            self._tag_index.clear()
            self._total_size = 0
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def clear_by_tag(self, tag: str) -> int:
        """Remove every entry carrying tag. Returns the number removed."""
        with self._lock:
            keys = list(self._tag_index.get(tag, ()))
            for key in keys:
                self._remove(key)
            return len(keys)

    def clear_expired(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                self._remove(key)
            self._last_cleanup = now

        if expired:
            logger.debug("expired cache entries removed", count=len(expired))
        return len(expired)

    def invalidate(self, pattern: KeyPattern) -> int:
        """Remove every key matching pattern.

        A str is matched as a literal substring, a compiled re.Pattern with
        search(). Returns the number removed.
        """
        regex = compile_pattern(pattern)
        with self._lock:
            keys = [key for key in self._entries if regex.search(key)]
            for key in keys:
                self._remove(key)

        logger.debug("cache keys invalidated", pattern=regex.pattern, count=len(keys))
        return len(keys)

    def evict(self, strategy: str | EvictionPolicy | None = None) -> str | None:
        """Evict exactly one entry. Returns the evicted key, None if empty."""
        policy = self._policy if strategy is None else get_policy(strategy)
        with self._lock:
            return self._evict(policy)

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def refresh(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        *,
        ttl: Duration | None = None,
        tags: Iterable[str] | None = None,
        version: int | None = None,
    ) -> T | None:
        """Fetch a fresh value and store it under key.

        If the fetcher raises, the failure is logged, None is returned and
        any previously cached value is kept. Concurrent refreshes of the
        same key with the same ttl, tags and version share one fetch and
        its result.
        """
        validate_key(key)
        ttl_ms, tag_set, version = self._resolve_options(None, ttl, tags, version)

        flight: _InFlightKey = (key, ttl_ms, tag_set, version)
        loop = asyncio.get_running_loop()
        with self._lock:
            pending = self._in_flight.get(flight)
            owner = pending is None or pending.get_loop() is not loop
            if owner:
                pending = loop.create_future()
                self._in_flight[flight] = pending

        if not owner:
            result: T | None = await asyncio.shield(pending)
            return result

        try:
            data = await fetcher()
        except asyncio.CancelledError:
            pending.cancel()
            raise
        except Exception as e:
            logger.warning(
                "cache refresh failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            result = None
        except BaseException as e:
            pending.set_exception(e)
            raise
        else:
            self._store(key, data, ttl_ms, tag_set, version)
            result = data
        finally:
            with self._lock:
                if self._in_flight.get(flight) is pending:
                    del self._in_flight[flight]

        pending.set_result(result)
        return result

    async def fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        *,
        ttl: Duration | None = None,
        tags: Iterable[str] | None = None,
        version: int | None = None,
    ) -> T | None:
        """Cache-aside read: the cached value if valid, otherwise refresh()."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not entry.is_expired(self._clock()):
                self._hits += 1
                return cast(T, entry.data)
            if entry is not None:
                self._remove(key)
            self._misses += 1

        return await self.refresh(key, fetcher, ttl=ttl, tags=tags, version=version)

    def handle(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]] | None = None,
        options: CacheOptions | None = None,
    ) -> CacheHandle[T]:
        """Return a view of this cache bound to a single key."""
        return CacheHandle(self, validate_key(key), fetcher, options)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    generate_key = staticmethod(generate_key)

    def is_expired(self, key: str) -> bool:
        """True if key is absent or past its TTL."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is None or entry.is_expired(self._clock())

    def get_age(self, key: str) -> int:
        """Milliseconds since key was written, or -1 if absent."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return -1
            return entry.age(self._clock())

    def is_stale(self, key: str) -> bool:
        """True if key is absent, expired, or older than its version window."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return True
            now = self._clock()
            if entry.is_expired(now):
                return True
            return entry.age(now) > entry.stale_after

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def keys_by_tag(self, tag: str) -> list[str]:
        with self._lock:
            tagged = self._tag_index.get(tag, set())
            return [key for key in self._entries if key in tagged]

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                total_entries=len(self._entries),
                total_size=self._total_size,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                last_cleanup=self._last_cleanup,
            )

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def evictions(self) -> int:
        return self._evictions

    @property
    def last_cleanup(self) -> int:
        return self._last_cleanup

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    # -------------------------------------------------------------------------
    # Periodic cleanup
    # -------------------------------------------------------------------------

    def cleanup(self) -> int:
        """Drop expired entries. Run on a timer via start_cleanup()."""
        return self.clear_expired()

    def start_cleanup(self) -> None:
        """Start (or restart) the background cleanup timer."""
        self._scheduler.start()

    def stop_cleanup(self) -> None:
        self._scheduler.stop()

    @property
    def cleanup_running(self) -> bool:
        return self._scheduler.running

    def __enter__(self) -> CacheEngine:
        self.start_cleanup()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop_cleanup()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _resolve_options(
        self,
        options: CacheOptions | None,
        ttl: Duration | None,
        tags: Iterable[str] | None,
        version: int | None,
    ) -> tuple[int, frozenset[str], int]:
        base = options or CacheOptions()
        ttl = ttl if ttl is not None else base.ttl
        tags = tags if tags is not None else base.tags
        version = version if version is not None else base.version

        ttl_ms = (
            self._default_ttl
            if ttl is None
            else parse_positive_duration(ttl, name="ttl")
        )

        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise InvalidOptionsError(
                f"version must be a positive integer, got {version!r}"
            )

        if isinstance(tags, str):
            raise InvalidOptionsError(
                f"tags must be a collection of strings, not a string: {tags!r}"
            )
        tag_set = frozenset(tags)
        if not all(isinstance(tag, str) and tag for tag in tag_set):
            raise InvalidOptionsError(f"tags must be non-empty strings: {tags!r}")

        return ttl_ms, tag_set, version

    def _store(
        self,
        key: str,
        data: Any,
        ttl_ms: int,
        tags: frozenset[str],
        version: int,
    ) -> None:
        size = _estimate_size(data)
        with self._lock:
            now = self._clock()
            entry: CacheEntry[Any] = CacheEntry(
                key=key,
                data=data,
                timestamp=now,
                expires_at=now + ttl_ms,
                tags=tags,
                version=version,
                size=size,
            )
            if key in self._entries:
                self._remove(key)
            elif len(self._entries) >= self._max_entries:
                if self._evict(self._policy) is None:
                    logger.warning(
                        "eviction policy freed no slot, falling back to lru",
                        strategy=self._policy.name,
                        key=key,
                    )
                    self._evict(_FALLBACK_POLICY)

            self._entries[key] = entry
            self._total_size += entry.size
            for tag in entry.tags:
                self._tag_index.setdefault(tag, set()).add(key)

    def _remove(self, key: str) -> CacheEntry[Any] | None:
        """Unlink key from the map, tag index and size total. Lock held."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        self._total_size -= entry.size
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tag_index[tag]
        return entry

    def _evict(self, policy: EvictionPolicy) -> str | None:
        victim = policy.select(self._entries)
        if victim is None or self._remove(victim) is None:
            return None
        self._evictions += 1
        logger.debug("cache entry evicted", key=victim, strategy=policy.name)
        return victim


def create_engine(
    *,
    default_ttl: Duration = DEFAULT_TTL,
    max_entries: int = DEFAULT_MAX_ENTRIES,
    cleanup_interval: Duration = DEFAULT_CLEANUP_INTERVAL,
    eviction_strategy: str | EvictionPolicy = "lru",
    clock: Callable[[], int] | None = None,
) -> CacheEngine:
    """Create a cache engine.

    Args:
        default_ttl: TTL used when set() gets none
        max_entries: Upper bound on stored entries
        cleanup_interval: Period of the background expiry sweep
        eviction_strategy: "lru", "fifo", "random" or an EvictionPolicy
        clock: Millisecond clock, defaults to wall time

    Returns:
        CacheEngine instance
    """
    return CacheEngine(
        default_ttl=default_ttl,
        max_entries=max_entries,
        cleanup_interval=cleanup_interval,
        eviction_strategy=eviction_strategy,
        clock=clock,
    )


__all__ = ["CacheEngine", "create_engine"]
