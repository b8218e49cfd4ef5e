"""Eviction policies for choosing which entry to drop at capacity."""

import random
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from kache.errors import InvalidOptionsError
from kache.types import CacheEntry


@runtime_checkable
class EvictionPolicy(Protocol):
    """Picks one victim key from the current entries."""

    name: str

    def select(self, entries: Mapping[str, CacheEntry[Any]]) -> str | None:
        """Return the key to evict, or None if there is nothing to evict."""
        ...


class LRUPolicy:
    """Evict the least recently written entry (smallest timestamp).

    Reads do not refresh an entry's timestamp, so this orders by write
    time. Ties go to the entry inserted first.
    """

    name = "lru"

    def select(self, entries: Mapping[str, CacheEntry[Any]]) -> str | None:
        if not entries:
            return None
        return min(entries.values(), key=lambda entry: entry.timestamp).key


class FIFOPolicy:
    """Evict the first entry in insertion order."""

    name = "fifo"

    def select(self, entries: Mapping[str, CacheEntry[Any]]) -> str | None:
        return next(iter(entries), None)


class RandomPolicy:
    """Evict a uniformly chosen entry."""

    name = "random"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def select(self, entries: Mapping[str, CacheEntry[Any]]) -> str | None:
        if not entries:
            return None
        return self._rng.choice(list(entries))


_POLICIES: dict[str, Callable[[], EvictionPolicy]] = {
    "lru": LRUPolicy,
    "fifo": FIFOPolicy,
    "random": RandomPolicy,
}


def get_policy(strategy: str | EvictionPolicy) -> EvictionPolicy:
    """Resolve a strategy name (or pass through a policy instance)."""
    if isinstance(strategy, str):
        try:
            return _POLICIES[strategy]()
        except KeyError:
            raise InvalidOptionsError(
                f"Unknown eviction strategy: {strategy!r} "
                f"(expected one of {', '.join(_POLICIES)})"
            ) from None
    if isinstance(strategy, EvictionPolicy):
        return strategy
    raise InvalidOptionsError(f"Invalid eviction strategy: {strategy!r}")
