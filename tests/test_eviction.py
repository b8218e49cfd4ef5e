"""Tests for eviction policies and capacity enforcement."""

import random

import pytest
from structlog.testing import capture_logs

from kache import (
    CacheEngine,
    EvictionPolicy,
    FIFOPolicy,
    InvalidOptionsError,
    LRUPolicy,
    RandomPolicy,
    create_engine,
    get_policy,
)
from kache.types import CacheEntry


def _entry(key: str, timestamp: int) -> CacheEntry[object]:
    return CacheEntry(key=key, data=key, timestamp=timestamp, expires_at=timestamp + 1)


class TestPolicies:
    """Tests for victim selection."""

    def test_lru_picks_oldest_write(self) -> None:
        entries = {
            "b": _entry("b", 20),
            "a": _entry("a", 10),
            "c": _entry("c", 30),
        }
        assert LRUPolicy().select(entries) == "a"

    def test_lru_tie_goes_to_first_inserted(self) -> None:
        entries = {"x": _entry("x", 5), "y": _entry("y", 5)}
        assert LRUPolicy().select(entries) == "x"

    def test_fifo_picks_first_inserted(self) -> None:
        entries = {
            "b": _entry("b", 20),
            "a": _entry("a", 10),
        }
        assert FIFOPolicy().select(entries) == "b"

    def test_random_uses_rng(self) -> None:
        entries = {k: _entry(k, i) for i, k in enumerate("abcdef")}
        chosen = RandomPolicy(random.Random(42)).select(entries)
        assert chosen in entries
        assert RandomPolicy(random.Random(42)).select(entries) == chosen

    @pytest.mark.parametrize("policy", [LRUPolicy(), FIFOPolicy(), RandomPolicy()])
    def test_empty(self, policy: EvictionPolicy) -> None:
        assert policy.select({}) is None

    def test_get_policy_by_name(self) -> None:
        assert isinstance(get_policy("lru"), LRUPolicy)
        assert isinstance(get_policy("fifo"), FIFOPolicy)
        assert isinstance(get_policy("random"), RandomPolicy)

    def test_get_policy_passthrough(self) -> None:
        policy = FIFOPolicy()
        assert get_policy(policy) is policy

    def test_get_policy_rejects_unknown(self) -> None:
        with pytest.raises(InvalidOptionsError):
            get_policy("lfu")
        with pytest.raises(InvalidOptionsError):
            get_policy(42)  # type: ignore[arg-type]


class TestEvict:
    """Tests for explicit evict() calls."""

    def test_evict_lru_by_default(self, engine: CacheEngine, clock) -> None:
        engine.set("a", 1)
        clock.advance(1)
        engine.set("b", 2)

        assert engine.evict() == "a"
        assert engine.evictions == 1
        assert engine.keys() == ["b"]

    def test_lru_ignores_reads(self, engine: CacheEngine, clock) -> None:
        """Test that reading an entry does not protect it from eviction."""
        engine.set("a", 1)
        clock.advance(1)
        engine.set("b", 2)
        engine.get("a")

        assert engine.evict("lru") == "a"

    def test_lru_follows_rewrites(self, engine: CacheEngine, clock) -> None:
        """Test that rewriting a key makes it the newest entry."""
        engine.set("a", 1)
        clock.advance(1)
        engine.set("b", 2)
        clock.advance(1)
        engine.set("a", 3)

        assert engine.evict("lru") == "b"

    def test_evict_fifo(self, engine: CacheEngine, clock) -> None:
        engine.set("a", 1)
        engine.set("b", 2)
        assert engine.evict("fifo") == "a"

    def test_evict_random(self, engine: CacheEngine) -> None:
        engine.set("a", 1)
        engine.set("b", 2)
        victim = engine.evict("random")
        assert victim in ("a", "b")
        assert len(engine) == 1
        assert engine.evictions == 1

    def test_evict_empty_is_noop(self, engine: CacheEngine) -> None:
        assert engine.evict() is None
        assert engine.evictions == 0

    def test_evict_updates_tag_index(self, engine: CacheEngine) -> None:
        engine.set("a", 1, tags=["t"])
        engine.evict()
        assert engine.keys_by_tag("t") == []
        assert engine.clear_by_tag("t") == 0


class TestCapacity:
    """Tests for eviction triggered by set() at max_entries."""

    def test_oldest_evicted(self, clock) -> None:
        """Test that the (N+1)th key evicts the oldest write."""
        engine = create_engine(max_entries=2, clock=clock)
        engine.set("a", 1)
        clock.advance(1)
        engine.set("b", 2)
        clock.advance(1)
        engine.set("c", 3)

        assert engine.has("a") is False
        assert engine.has("b") is True
        assert engine.has("c") is True
        assert engine.evictions == 1
        assert len(engine) == 2

    def test_same_timestamp_evicts_first(self, clock) -> None:
        """Test writes in the same millisecond evict in insertion order."""
        engine = create_engine(max_entries=2, clock=clock)
        engine.set("a", 1)
        engine.set("b", 2)
        engine.set("c", 3)
        assert engine.keys() == ["b", "c"]

    def test_count_stays_at_bound(self, clock) -> None:
        engine = create_engine(max_entries=5, clock=clock)
        for i in range(20):
            clock.advance(1)
            engine.set(f"k{i}", i)
        assert len(engine) == 5
        assert engine.evictions == 15
        assert engine.keys() == [f"k{i}" for i in range(15, 20)]

    def test_replacement_does_not_evict(self, clock) -> None:
        engine = create_engine(max_entries=2, clock=clock)
        engine.set("a", 1)
        engine.set("b", 2)
        engine.set("b", 3)
        assert engine.keys() == ["a", "b"]
        assert engine.evictions == 0

    def test_configured_strategy_used(self, clock) -> None:
        engine = create_engine(max_entries=2, eviction_strategy="fifo", clock=clock)
        clock.advance(10)
        engine.set("a", 1)
        clock.now -= 5
        engine.set("b", 2)
        engine.set("c", 3)
        assert engine.keys() == ["b", "c"]

    def test_custom_policy(self, clock) -> None:
        """Test plugging in a policy object."""

        class EvictLargest:
            name = "largest"

            def select(self, entries):
                if not entries:
                    return None
                return max(entries.values(), key=lambda e: e.size).key

        engine = create_engine(
            max_entries=2, eviction_strategy=EvictLargest(), clock=clock
        )
        engine.set("big", "x" * 100)
        engine.set("small", "x")
        engine.set("new", "y")
        assert engine.keys() == ["small", "new"]
        assert engine.eviction_strategy == "largest"

    def test_shrinking_bound_applies_on_next_insert(self, clock) -> None:
        """Test that lowering max_entries evicts one entry per new insert."""
        engine = create_engine(max_entries=4, clock=clock)
        for key in "abcd":
            clock.advance(1)
            engine.set(key, key)

        engine.max_entries = 2
        assert len(engine) == 4

        clock.advance(1)
        engine.set("e", "e")
        assert engine.keys() == ["b", "c", "d", "e"]

    def test_policy_that_frees_nothing_falls_back_to_lru(self, clock) -> None:
        """Test that the bound holds when a custom policy picks no victim."""

        class NeverEvict:
            name = "never"

            def select(self, entries):
                return None

        engine = create_engine(
            max_entries=2, eviction_strategy=NeverEvict(), clock=clock
        )
        engine.set("a", 1)
        clock.advance(1)
        engine.set("b", 2)

        with capture_logs() as logs:
            engine.set("c", 3)

        assert engine.keys() == ["b", "c"]
        assert engine.evictions == 1
        warnings = [log for log in logs if log["log_level"] == "warning"]
        assert len(warnings) == 1
        assert warnings[0]["strategy"] == "never"

    def test_policy_returning_unknown_key_falls_back(self, clock) -> None:
        class WrongKey:
            name = "wrong"

            def select(self, entries):
                return "not-a-key"

        engine = create_engine(max_entries=1, eviction_strategy=WrongKey(), clock=clock)
        engine.set("a", 1)
        engine.set("b", 2)
        assert engine.keys() == ["b"]
        assert len(engine) == 1
