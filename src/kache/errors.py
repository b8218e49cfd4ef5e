"""Exception types raised by kache."""


class KacheError(Exception):
    """Base class for kache errors."""


class InvalidOptionsError(KacheError, ValueError):
    """A key, TTL, version, tag set or engine setting was rejected."""


class FetchError(KacheError):
    """A fetcher could not produce a value for refresh()."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
