# tests/test_cache.py
"""Tests for the in-memory result cache."""

import pytest

from clearance_service.cache import Cache, InMemoryCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_set_and_get() -> None:
    """Test a basic round trip and a miss."""
    cache = InMemoryCache()
    await cache.set("search:nike:25", b"payload")
    assert await cache.get("search:nike:25") == b"payload"
    assert await cache.get("search:adidas:25") is None
    assert isinstance(cache, Cache)


@pytest.mark.asyncio
async def test_entries_expire() -> None:
    """Test that entries disappear once their TTL has passed."""
    clock = FakeClock()
    cache = InMemoryCache(clock=clock)
    await cache.set("key", b"value", ttl_seconds=60)

    clock.now += 60
    assert await cache.get("key") == b"value"
    clock.now += 1
    assert await cache.get("key") is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_delete_and_clear_pattern() -> None:
    """Test single deletes and glob pattern clearing."""
    cache = InMemoryCache()
    for key in ("search:nike:25", "search:nike:9", "search:adidas:25"):
        await cache.set(key, b"x")

    assert await cache.clear("search:nike:*") == 2
    assert await cache.get("search:adidas:25") == b"x"

    await cache.delete("search:adidas:25")
    await cache.delete("missing")
    assert len(cache) == 0
