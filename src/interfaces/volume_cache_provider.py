"""Abstract base class for keyword-volume lookup caches.

The volume API is billed per keyword.  A cache in front of it lets the
growth engine re-validate rows (e.g. after a crash and resume) without
spending quota twice for the same ``(surface, location, language, keyword)``
within the TTL.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.interfaces.keyword_volume_provider import KeywordVolume


class IVolumeCacheProvider(ABC):
    """Contract for volume caches.  Keys are normalized keywords."""

    @abstractmethod
    async def get_many(
        self,
        surface: str,
        location_code: int,
        language_code: str,
        keywords: list[str],
    ) -> dict[str, KeywordVolume]:
        """Return cached entries for ``keywords`` (misses are omitted).

        Parameters
        ----------
        surface:
            Which provider surface produced the values (``"primary"`` or
            ``"secondary"``) -- the two never share entries.
        keywords:
            Normalized keywords.
        """

    @abstractmethod
    async def set_many(
        self,
        surface: str,
        location_code: int,
        language_code: str,
        values: dict[str, KeywordVolume],
    ) -> None:
        """Store ``values`` keyed by normalized keyword."""

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry."""
