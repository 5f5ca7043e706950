"""Local query cache holding the last known friend data.

Keys are tuples such as ("friends", "list") or ("blocks", "is_blocked", user_id).
Invalidation works on key prefixes: invalidating ("blocks",) drops every
key that starts with "blocks".

Optional loaders can be registered per key prefix; ``refresh`` re-fetches
invalidated data from the server so tentative state gets superseded by
authoritative data.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

CacheKey = tuple[str, ...]
Loader = Callable[[CacheKey], Awaitable[Any]]

# Well-known keys
FRIENDS_LIST: CacheKey = ("friends", "list")
FRIENDS_COUNT: CacheKey = ("friends", "count")
RECEIVED_REQUESTS: CacheKey = ("friend-requests", "received")
SENT_REQUESTS: CacheKey = ("friend-requests", "sent")
BLOCKED_LIST: CacheKey = ("blocks", "list")


def is_blocked_key(user_id: str) -> CacheKey:
    """Key of the "is this user blocked" flag."""
    return ("blocks", "is_blocked", user_id)


def _matches(key: CacheKey, prefix: CacheKey) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    """In-memory cache with prefix invalidation."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, Any] = {}
        self._loaders: list[tuple[CacheKey, Loader]] = []

    def read(self, key: CacheKey) -> Any:
        """Get the cached value for a key, or None if absent."""
        return self._entries.get(key)

    def contains(self, key: CacheKey) -> bool:
        return key in self._entries

    def write(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = value

    def remove(self, key: CacheKey) -> None:
        """Remove exactly one key (no prefix matching)."""
        self._entries.pop(key, None)

    def invalidate(self, prefix: CacheKey) -> list[CacheKey]:
        """Drop every entry whose key starts with prefix.

        Returns:
            The keys that were dropped.
        """
        dropped = [key for key in self._entries if _matches(key, prefix)]
        for key in dropped:
            del self._entries[key]
        if dropped:
            logger.debug("Invalidated %d cache entries under %s", len(dropped), prefix)
        return dropped

    def keys(self) -> list[CacheKey]:
        return list(self._entries)

    def register_loader(self, prefix: CacheKey, loader: Loader) -> None:
        """Register an async loader used by refresh() for keys under prefix."""
        self._loaders.append((prefix, loader))

    def _loader_for(self, key: CacheKey) -> Loader | None:
        # Longest matching prefix wins
        best: tuple[CacheKey, Loader] | None = None
        for prefix, loader in self._loaders:
            if _matches(key, prefix) and (best is None or len(prefix) > len(best[0])):
                best = (prefix, loader)
        return best[1] if best else None

    async def refresh(self, key: CacheKey) -> Any:
        """Load a key from its registered loader and cache the result.

        Returns:
            The loaded value, or None if no loader covers the key.
        """
        loader = self._loader_for(key)
        if loader is None:
            return None
        value = await loader(key)
        self._entries[key] = value
        return value
