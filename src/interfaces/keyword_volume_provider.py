"""Abstract base class for keyword search-volume providers.

Defines the contract for the external, quota-constrained keyword-volume
API.  The production adapter routes every request through a forwarding
proxy (see ``src/providers/volume/``); tests inject fakes.  Callers never
use a provider directly -- they go through
:class:`~src.pipeline.rate_gated_client.RateGatedVolumeClient`, which adds
the global rate gate, batching and retries.

Provider contract for absent keywords: a keyword that was sent but does
not appear in the response means "no data", not zero volume.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class KeywordVolume:
    """Metrics for one keyword as reported by the provider.

    Attributes
    ----------
    keyword:
        The keyword as echoed by the provider (may differ in case/spacing
        from what was sent -- join on normalized text).
    volume:
        Monthly search volume on the primary surface, ``None`` when the
        provider returned the keyword without a number.
    cpc:
        Cost per click, when reported.
    competition_index:
        0-100 advertiser competition, when reported.
    secondary_volume:
        Marketplace volume, only set by the secondary surface.
    """

    keyword: str
    volume: int | None = None
    cpc: float | None = None
    competition_index: float | None = None
    secondary_volume: int | None = None


class IKeywordVolumeProvider(ABC):
    """Contract for keyword-volume lookups.

    All methods take at most one batch of keywords; batching across larger
    inputs is the caller's concern.
    """

    @abstractmethod
    async def fetch_search_volume(
        self,
        keywords: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        """Return primary search volume for a batch of keywords.

        Raises
        ------
        src.utils.errors.ProviderCallError
            On any non-successful response; ``error_class`` carries the
            transient/terminal classification.
        """

    @abstractmethod
    async def fetch_secondary_volume(
        self,
        keywords: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        """Return marketplace (secondary) volume for a batch of keywords."""

    @abstractmethod
    async def fetch_related_keywords(
        self,
        seeds: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        """Return terms related to ``seeds`` with their attached volume."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"dataforseo"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` when credentials and endpoint are configured."""
