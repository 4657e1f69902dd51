"""
Result cache for the search service.

The service only needs ``get`` and ``set`` with a TTL. ``InMemoryCache`` is
the process-local implementation used when nothing else is configured.
"""

import fnmatch
import time
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class Cache(Protocol):
    """Anything the search service can store serialized results in."""

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def set(self, key: str, value: bytes, ttl_seconds: int = 3600) -> None:
        ...


class InMemoryCache:
    """
    Dict-backed cache with per-entry expiry.

    Expired entries are dropped lazily when read. ``clock`` is injectable so
    expiry can be tested without sleeping. No method awaits while touching the
    dict, so calls from one event loop never interleave.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() > expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int = 3600) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self, pattern: str = "*") -> int:
        """
        Remove every key matching a glob pattern such as ``search:nike:*``.

        Returns:
            int: Number of entries removed.
        """
        doomed = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)
