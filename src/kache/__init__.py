"""kache - In-process cache engine with TTL, tags and eviction policies."""

from contextlib import suppress

# Duration parsing
from kache.duration import parse_duration

# Engine API
from kache.engine import CacheEngine, create_engine
from kache.errors import FetchError, InvalidOptionsError, KacheError
from kache.eviction import (
    EvictionPolicy,
    FIFOPolicy,
    LRUPolicy,
    RandomPolicy,
    get_policy,
)
from kache.handle import CacheHandle
from kache.keys import generate_key
from kache.log import configure_logging

# Core types
from kache.types import (
    CacheEntry,
    CacheOptions,
    CacheStats,
    Duration,
    EvictionStrategy,
)

# Optional fetchers - only available when httpx is installed
with suppress(ImportError):
    from kache.fetchers import http_fetcher

__version__ = "0.1.0"

__all__ = [
    "CacheEngine",
    "CacheEntry",
    "CacheHandle",
    "CacheOptions",
    "CacheStats",
    "Duration",
    "EvictionPolicy",
    "EvictionStrategy",
    "FIFOPolicy",
    "FetchError",
    "InvalidOptionsError",
    "KacheError",
    "LRUPolicy",
    "RandomPolicy",
    "configure_logging",
    "create_engine",
    "generate_key",
    "get_policy",
    "http_fetcher",
    "parse_duration",
]
