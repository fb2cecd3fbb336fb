"""Keyword candidate generation from category seed dictionaries.

Produces three kinds of candidates:

- **template candidates** (:meth:`CandidateGenerator.generate`): the top
  brands crossed with the top head terms through a fixed set of purchase
  templates, plus head-term expansions, tagged with the anchor's leading
  word when it is informative.
- **discovery seeds** (:meth:`CandidateGenerator.discovery_seeds`): real
  search patterns sent to the related-keywords surface when templates run
  dry.
- **expansion seeds** (:meth:`CandidateGenerator.expansion_seeds`): seed
  rows for a new heuristic anchor.

All output is normalized and sorted so repeated runs produce identical
candidate lists.
"""

from __future__ import annotations

from collections.abc import Mapping

from src.config.seed_dictionaries import (
    DISCOVERY_MODIFIERS,
    SeedDictionary,
    get_seed_dictionary,
)
from src.services.keyword_guard import contains_phrase
from src.utils.logging import get_logger
from src.utils.text_normalizer import has_year_token, normalize_keyword, tokenize

_TOP_BRANDS = 25
_TOP_HEADS = 15
_DISCOVERY_HEADS = 8
_DISCOVERY_BRANDS = 10
_EXPANSION_HEADS = 3

_TEMPLATES: tuple[str, ...] = (
    "{b} {h}",
    "{b} {h} price",
    "{b} {h} for men",
    "best {h} {b}",
    "{b} {h} online",
    "{b} {h} review",
    "{h} by {b}",
    "{b} new {h}",
    "{b} {h} combo",
    "{b} {h} kit",
)

_HEAD_EXPANSIONS: tuple[str, ...] = (
    "best {h} in india",
    "{h} brands list",
    "{h} price list",
    "top 10 {h}",
)

_EXPANSION_PATTERNS: tuple[str, ...] = (
    "{base} {mod}",
    "best {base} {mod}",
    "{base} {mod} india",
    "{base} {mod} price",
    "{base} {mod} review",
    "{base} {mod} online",
)


def anchor_token(anchor_name: str) -> str:
    """First word of the anchor name, lowercased, with ``&`` dropped."""
    words = anchor_name.lower().replace("&", "").split()
    return normalize_keyword(words[0]) if words else ""


class CandidateGenerator:
    """Deterministic candidate source for one seed catalog."""

    def __init__(self, catalog: Mapping[str, SeedDictionary] | None = None) -> None:
        self._catalog = catalog
        self._logger = get_logger(__name__)

    @property
    def catalog(self) -> Mapping[str, SeedDictionary] | None:
        return self._catalog

    def seeds_for(self, category_id: str) -> SeedDictionary:
        return get_seed_dictionary(category_id, self._catalog)

    def generate(self, category_id: str, anchor_name: str, limit: int = 2000) -> list[str]:
        """Template candidates for ``anchor_name``, at most ``limit``, sorted."""
        seeds = self.seeds_for(category_id)
        if seeds.is_empty:
            self._logger.warning("generator_no_dictionary", category_id=category_id)
            return []

        heads = seeds.head_terms[:_TOP_HEADS]
        brands = seeds.brands[:_TOP_BRANDS]
        token = anchor_token(anchor_name)
        candidates: set[str] = set()

        for brand in brands:
            for head in heads:
                for template in _TEMPLATES:
                    candidates.add(normalize_keyword(template.format(b=brand, h=head)))
                if len(token) > 3:
                    candidates.add(normalize_keyword(f"{brand} {head} {token}"))

        if len(candidates) < limit:
            for head in heads:
                for template in _HEAD_EXPANSIONS:
                    candidates.add(normalize_keyword(template.format(h=head)))
                if token:
                    candidates.add(normalize_keyword(f"{head} for {token}"))

        kept = [k for k in candidates if self._is_usable(k, seeds)]
        return sorted(kept)[:limit]

    def discovery_seeds(self, category_id: str) -> list[str]:
        """Seed phrases for the related-keywords surface, sorted."""
        seeds_dict = self.seeds_for(category_id)
        heads = list(seeds_dict.head_terms)
        seeds: set[str] = set()

        for head in heads:
            seeds.update({head, f"{head} for men", f"best {head}", f"{head} india"})

        for head in heads[:_DISCOVERY_HEADS]:
            for modifier in DISCOVERY_MODIFIERS:
                seeds.add(f"{head} {modifier}")

        lead = heads[0] if heads else category_id.replace("-", " ")
        for brand in seeds_dict.brands[:_DISCOVERY_BRANDS]:
            seeds.add(f"{brand} {lead}")
            seeds.add(f"{brand} products")

        seeds.update(seeds_dict.problem_phrases)
        return sorted(s for s in (normalize_keyword(s) for s in seeds) if len(s) >= 3)

    def expansion_seeds(self, category_id: str, modifier: str) -> list[str]:
        """Seed candidates for a heuristic anchor named after ``modifier``."""
        seeds = self.seeds_for(category_id)
        mod = normalize_keyword(modifier.replace("&", " "))
        bases = [normalize_keyword(category_id.replace("-", " "))]
        bases.extend(seeds.head_terms[:_EXPANSION_HEADS])
        out: set[str] = set()
        for base in bases:
            for pattern in _EXPANSION_PATTERNS:
                out.add(normalize_keyword(pattern.format(base=base, mod=mod)))
        return sorted(out)

    @staticmethod
    def _is_usable(keyword: str, seeds: SeedDictionary) -> bool:
        if len(keyword) < 5 or len(tokenize(keyword)) < 2:
            return False
        if has_year_token(keyword):
            return False
        return any(contains_phrase(keyword, h) for h in seeds.head_terms) or any(
            contains_phrase(keyword, b) for b in seeds.brands
        )
