"""Service for the locally cached word catalog."""
import logging
import time
from typing import Callable, List, Optional

from vocasync import monitoring
from vocasync.config import WORDS_CACHE_TIME_KEY, WORDS_KEY, settings
from vocasync.errors import StorageError
from vocasync.models.quiz_models import CacheEnvelope, WordCatalogEntry
from vocasync.services.api_client import ApiClient
from vocasync.services.storage_service import KeyValueStore

logger = logging.getLogger(__name__)


class WordCatalogCache:
    """Time-boxed cache of the word catalog."""

    def __init__(
        self,
        kv: KeyValueStore,
        api: ApiClient,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the cache with its storage, API client and a clock returning epoch seconds."""
        self.kv = kv
        self.api = api
        self.ttl = ttl if ttl is not None else settings.cache.words_ttl
        self.clock = clock

    async def peek(self) -> Optional[CacheEnvelope]:
        """Get the stored envelope regardless of its age, or None if nothing is cached."""
        words = await self.kv.get(WORDS_KEY)
        if words is None:
            return None
        if not isinstance(words, list):
            raise StorageError("Cached word catalog is not a list")

        try:
            payload = [WordCatalogEntry.from_dict(item) for item in words]
        except (KeyError, TypeError) as e:
            raise StorageError("Cached word catalog is corrupt") from e

        cache_time = await self.kv.get(WORDS_CACHE_TIME_KEY)
        try:
            fetched_at = int(cache_time) / 1000 if cache_time is not None else 0.0
        except (TypeError, ValueError):
            # Unreadable timestamp makes the payload stale
            fetched_at = 0.0
        return CacheEnvelope(payload=payload, fetched_at=fetched_at)

    async def store(self, words: List[WordCatalogEntry]) -> CacheEnvelope:
        """Save a freshly fetched catalog."""
        fetched_at = self.clock()
        await self.kv.set_many({
            WORDS_KEY: [word.to_dict() for word in words],
            WORDS_CACHE_TIME_KEY: str(int(fetched_at * 1000)),
        })
        return CacheEnvelope(payload=list(words), fetched_at=fetched_at)

    async def get_words_with_cache(self) -> List[WordCatalogEntry]:
        """Get the catalog from the cache while fresh, otherwise from the server.

        A failing fetch propagates even if a stale envelope exists.
        """
        envelope = await self.peek()
        if envelope is not None and envelope.is_fresh(self.clock(), self.ttl):
            monitoring.words_cache_hits.inc()
            return envelope.payload

        monitoring.words_cache_misses.inc()
        words = await self.api.fetch_words()
        await self.store(words)
        logger.info(f"Word catalog refreshed with {len(words)} words")
        return words

    async def refresh(self) -> List[WordCatalogEntry]:
        """Fetch the catalog from the server and cache it unconditionally."""
        words = await self.api.fetch_words()
        await self.store(words)
        return words
