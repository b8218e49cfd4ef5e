"""Core types for the kache engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Literal, TypeVar

T = TypeVar("T")

# One minute of freshness per entry version
STALE_WINDOW_MS = 60_000

EvictionStrategy = Literal["lru", "fifo", "random"]

# Duration type alias
Duration = str | int  # "30s", "5m", "2h", "1d" or milliseconds


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with metadata."""

    key: str
    data: T
    timestamp: int  # Unix timestamp ms, time of write
    expires_at: int  # timestamp + ttl
    tags: frozenset[str] = frozenset()
    version: int = 1
    size: int = 0  # Approximate serialized length of data

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def age(self, now: int) -> int:
        return now - self.timestamp

    @property
    def stale_after(self) -> int:
        """Milliseconds after which a valid entry is reported stale."""
        return self.version * STALE_WINDOW_MS


@dataclass(frozen=True, slots=True)
class CacheOptions:
    """Per-write options for set() and refresh()."""

    ttl: Duration | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    version: int = 1


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Snapshot of engine statistics."""

    total_entries: int
    total_size: int
    hits: int
    misses: int
    evictions: int
    last_cleanup: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    @property
    def miss_rate(self) -> float:
        total = self.hits + self.misses
        return self.misses / total if total else 0.0
