"""CacheHandle - a cache view bound to one key."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from kache.types import CacheOptions, Duration

if TYPE_CHECKING:
    from kache.engine import CacheEngine

T = TypeVar("T")


class CacheHandle(Generic[T]):
    """Key-bound access to a CacheEngine.

    Usage:
        students = engine.handle(
            engine.generate_key("students", {"branch": 3}),
            fetcher=lambda: repo.list_students(branch=3),
            options=CacheOptions(ttl="2m", tags=frozenset({"students"})),
        )
        rows = await students.fetch()
        students.delete()
    """

    __slots__ = ("_engine", "_fetcher", "_key", "_options")

    def __init__(
        self,
        engine: CacheEngine,
        key: str,
        fetcher: Callable[[], Awaitable[T]] | None = None,
        options: CacheOptions | None = None,
    ) -> None:
        self._engine = engine
        self._key = key
        self._fetcher = fetcher
        self._options = options or CacheOptions()

    @property
    def key(self) -> str:
        return self._key

    def get(self, default: Any = None) -> T | Any:
        return self._engine.get(self._key, default)

    def set(
        self,
        data: T,
        *,
        ttl: Duration | None = None,
        tags: Iterable[str] | None = None,
        version: int | None = None,
    ) -> None:
        """Store data using the handle's options, overridden per call."""
        self._engine.set(
            self._key, data, self._options, ttl=ttl, tags=tags, version=version
        )

    async def refresh(self) -> T | None:
        """Re-run the fetcher. None without a fetcher or on fetch failure."""
        if self._fetcher is None:
            return None
        return await self._engine.refresh(
            self._key,
            self._fetcher,
            ttl=self._options.ttl,
            tags=self._options.tags,
            version=self._options.version,
        )

    async def fetch(self) -> T | None:
        """Cached value if valid, otherwise refresh()."""
        if self._fetcher is None:
            return self.get()
        return await self._engine.fetch(
            self._key,
            self._fetcher,
            ttl=self._options.ttl,
            tags=self._options.tags,
            version=self._options.version,
        )

    def has(self) -> bool:
        return self._engine.has(self._key)

    def delete(self) -> bool:
        return self._engine.delete(self._key)

    def is_expired(self) -> bool:
        return self._engine.is_expired(self._key)

    def is_stale(self) -> bool:
        return self._engine.is_stale(self._key)

    @property
    def age(self) -> int:
        return self._engine.get_age(self._key)

    def __repr__(self) -> str:
        return f"CacheHandle({self._key!r})"
