"""Fetcher factories for CacheEngine.refresh()."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from kache.errors import FetchError


def http_fetcher(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Mapping[str, Any] | None = None,
) -> Callable[[], Awaitable[Any]]:
    """Build a fetcher that GETs url and returns the decoded JSON body.

    Transport failures, non-2xx responses and undecodable bodies raise
    FetchError, so refresh() keeps the previously cached value.

    Example:
        async with httpx.AsyncClient(base_url="https://api.example.edu") as client:
            await engine.refresh(
                "employees:branch:1",
                http_fetcher(client, "/employees", params={"branch": 1}),
                tags=["employees"],
            )
    """

    async def fetch() -> Any:
        try:
            response = await client.get(url, params=dict(params or {}))
        except httpx.HTTPError as e:
            raise FetchError(f"GET {url} failed: {e}") from e

        if not response.is_success:
            try:
                error = response.json().get("message", "Request failed")
            except (ValueError, AttributeError):
                error = f"HTTP {response.status_code}"
            raise FetchError(
                f"GET {url} failed: {error}", status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"GET {url} returned invalid JSON") from e

    return fetch


__all__ = ["http_fetcher"]
