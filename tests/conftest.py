"""Shared pytest fixtures."""

import pytest

from kache import CacheEngine, create_engine


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    """Create a fresh FakeClock for each test."""
    return FakeClock()


@pytest.fixture
def engine(clock: FakeClock) -> CacheEngine:
    """Create a CacheEngine driven by the fake clock."""
    return create_engine(clock=clock)
