"""Duration parsing utilities."""

import re

from kache.errors import InvalidOptionsError
from kache.types import Duration

_DURATION_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)$")
_UNITS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def parse_duration(duration: Duration) -> int:
    """Parse duration string to milliseconds. Passthrough if already int."""
    if isinstance(duration, bool):
        raise ValueError(f"Invalid duration: {duration!r}")
    if isinstance(duration, int):
        return duration
    if not isinstance(duration, str):
        raise ValueError(f"Invalid duration: {duration!r}")

    match = _DURATION_PATTERN.match(duration.strip())
    if not match:
        raise ValueError(f"Invalid duration: {duration!r}")

    value, unit = match.groups()
    return int(value) * _UNITS[unit]


def parse_positive_duration(duration: Duration, *, name: str) -> int:
    """Parse a duration that must be strictly positive."""
    try:
        ms = parse_duration(duration)
    except ValueError as e:
        raise InvalidOptionsError(f"{name}: {e}") from e
    if ms <= 0:
        raise InvalidOptionsError(f"{name} must be positive, got {duration!r}")
    return ms
