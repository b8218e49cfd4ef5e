"""Cache key construction and key pattern matching."""

import re
from collections.abc import Mapping
from typing import Any

from kache.errors import InvalidOptionsError

PAIR_SEPARATOR = "|"
FIELD_SEPARATOR = ":"

KeyPattern = str | re.Pattern[str]


def generate_key(prefix: str, params: Mapping[str, Any]) -> str:
    """
    Build a deterministic cache key from a prefix and parameters.

    Field names are sorted so the same field set always yields the same
    key, whatever order the mapping was built in.

    Example:
        generate_key("students", {"branch": 2, "class": "X"})
        # "students:branch:2|class:X"
    """
    pairs = PAIR_SEPARATOR.join(
        f"{name}{FIELD_SEPARATOR}{_format_value(params[name])}"
        for name in sorted(params)
    )
    return f"{prefix}{FIELD_SEPARATOR}{pairs}"


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compile_pattern(pattern: KeyPattern) -> re.Pattern[str]:
    """Compile an invalidation pattern.

    Strings are treated as literal substrings, so an empty string matches
    every key; compiled patterns are used as given.
    """
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise InvalidOptionsError(f"Invalid key pattern: {pattern!r}")
    return re.compile(re.escape(pattern))


def validate_key(key: str) -> str:
    if not isinstance(key, str) or not key:
        raise InvalidOptionsError(f"Cache key must be a non-empty string, got {key!r}")
    return key
