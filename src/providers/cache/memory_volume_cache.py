"""In-memory volume cache using cachetools.TTLCache.

Suitable for the single-process orchestrator; entries expire after the
configured TTL so stale volumes are eventually re-fetched.
"""

from __future__ import annotations

import structlog
from cachetools import TTLCache

from src.interfaces.keyword_volume_provider import KeywordVolume
from src.interfaces.volume_cache_provider import IVolumeCacheProvider

logger = structlog.get_logger(logger_name=__name__)

_CacheKey = tuple[str, int, str, str]


class MemoryVolumeCache(IVolumeCacheProvider):
    """TTL cache of provider answers keyed by surface/market/keyword.

    Parameters
    ----------
    max_size:
        Maximum number of keyword entries before LRU eviction.
    ttl:
        Time-to-live in seconds.
    """

    def __init__(self, max_size: int = 50_000, ttl: int = 6 * 3600) -> None:
        self._cache: TTLCache[_CacheKey, KeywordVolume] = TTLCache(maxsize=max_size, ttl=ttl)

    async def get_many(
        self,
        surface: str,
        location_code: int,
        language_code: str,
        keywords: list[str],
    ) -> dict[str, KeywordVolume]:
        hits: dict[str, KeywordVolume] = {}
        for keyword in keywords:
            value = self._cache.get((surface, location_code, language_code, keyword))
            if value is not None:
                hits[keyword] = value
        logger.debug(
            "volume_cache_lookup",
            surface=surface,
            requested=len(keywords),
            hits=len(hits),
        )
        return hits

    async def set_many(
        self,
        surface: str,
        location_code: int,
        language_code: str,
        values: dict[str, KeywordVolume],
    ) -> None:
        for keyword, value in values.items():
            self._cache[(surface, location_code, language_code, keyword)] = value
        logger.debug("volume_cache_store", surface=surface, stored=len(values))

    async def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
