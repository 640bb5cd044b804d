"""
Conversation reuse cache.

Maps a ``"<account>:<model>"`` key to a remote conversation id for a fixed
TTL. Access to each key is serialized with a per-key ``asyncio.Lock`` so
concurrent callers for the same key wait for one in-flight
create-and-send instead of racing on the same remote conversation.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60


@dataclass(frozen=True)
class ConversationCacheEntry:
    """A cached conversation id and the clock reading when it was stored."""
    conversation_id: str
    created_at: float


def conversation_cache_key(account_id: Optional[str], model: str) -> str:
    """Build the composite cache key for an account and model."""
    return f"{account_id or 'default'}:{model}"


class ConversationCache:
    """
    TTL cache of conversation ids with per-key mutual exclusion.

    Expired entries are evicted lazily, on the next lookup of their key,
    or by an explicit ``cleanup_expired()`` sweep.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Maximum age of a reusable entry
            clock: Monotonic clock returning seconds
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, ConversationCacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def _is_expired(self, entry: ConversationCacheEntry) -> bool:
        return self._clock() - entry.created_at >= self.ttl_seconds

    def get(self, key: str) -> Optional[str]:
        """Return the cached conversation id, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._is_expired(entry):
            del self._entries[key]
            logger.debug(f"Conversation cache entry expired: {key}")
            return None

        logger.debug(
            f"Using cached conversation {entry.conversation_id} "
            f"(age {self._clock() - entry.created_at:.1f}s)"
        )
        return entry.conversation_id

    def set(self, key: str, conversation_id: str) -> None:
        """Store a conversation id under ``key`` with the current clock reading."""
        self._entries[key] = ConversationCacheEntry(conversation_id, self._clock())

    def invalidate(self, key: str) -> bool:
        """Drop ``key``. Returns True if an entry was removed."""
        return self._entries.pop(key, None) is not None

    def cleanup_expired(self) -> int:
        """Remove every expired entry and return how many were removed."""
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        """Drop all entries, and the locks of keys nobody currently holds."""
        self._entries.clear()
        self._locks = {key: lock for key, lock in self._locks.items() if lock.locked()}

    def _lock_for(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @asynccontextmanager
    async def reserve(self, key: str) -> AsyncIterator["CacheSlot"]:
        """
        Hold exclusive access to ``key`` for the duration of the block.

        Other callers reserving the same key wait until the block exits.
        """
        async with self._lock_for(key):
            yield CacheSlot(self, key)

    async def get_or_create(
        self,
        key: str,
        factory: Callable[[], Awaitable[str]],
    ) -> Tuple[str, bool]:
        """
        Return the cached id for ``key`` or create one with ``factory``.

        Returns:
            (conversation_id, created) tuple
        """
        async with self.reserve(key) as slot:
            return await slot.get_or_create(factory)


class CacheSlot:
    """Exclusive handle on one cache key, obtained via ``ConversationCache.reserve``."""

    def __init__(self, cache: ConversationCache, key: str):
        self.cache = cache
        self.key = key

    async def get_or_create(
        self,
        factory: Callable[[], Awaitable[str]],
    ) -> Tuple[str, bool]:
        cached = self.cache.get(self.key)
        if cached is not None:
            return cached, False

        conversation_id = await factory()
        self.cache.set(self.key, conversation_id)
        logger.debug(f"Cached new conversation {conversation_id} under {self.key}")
        return conversation_id, True

    def invalidate(self) -> bool:
        return self.cache.invalidate(self.key)


_default_cache: Optional[ConversationCache] = None


def get_conversation_cache(ttl_seconds: float = DEFAULT_TTL_SECONDS) -> ConversationCache:
    """
    Get the process-wide conversation cache, creating it on first use.

    The TTL is fixed by the first caller; a later, different ``ttl_seconds``
    is ignored with a warning.
    """
    global _default_cache
    if _default_cache is None:
        _default_cache = ConversationCache(ttl_seconds=ttl_seconds)
    elif _default_cache.ttl_seconds != ttl_seconds:
        logger.warning(
            f"Conversation cache already created with ttl {_default_cache.ttl_seconds}s, "
            f"ignoring requested ttl {ttl_seconds}s"
        )
    return _default_cache
