"""Category-specificity guard for keyword candidates.

Every candidate (generated, discovered or expansion-seeded) passes through
:meth:`KeywordGuard.is_specific` before it can become a corpus row.  The
rules run in a fixed order and the first decisive rule wins:

1. shorter than 3 characters                      -> reject
2. contains a year token (2023-2027)              -> reject
3. contains a female-audience token               -> reject
4. single token: known head term or brand         -> accept, else reject
   (a rapidfuzz near-match >= 92 on a brand is accepted for tokens of at
   least 5 characters, e.g. "gilette")
5. only generic words and stopwords               -> reject
6. contains a head term                           -> accept
7. contains a brand: judge what is left after removing the brand
     nothing left / a commerce word               -> accept
     only generic words                           -> reject
     anything else                                -> accept
8. otherwise                                      -> reject

Phrase containment is matched on whole tokens, so the brand "he" does not
match inside "the" and the head term "gel" does not match "angel".
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from src.config.seed_dictionaries import (
    COMMERCE_WORDS,
    FEMALE_EXCLUSIONS,
    GENERIC_WORDS,
    STOPWORDS,
    SeedDictionary,
    get_seed_dictionary,
)
from src.utils.text_normalizer import fuzzy_match, has_year_token, normalize_keyword, tokenize

_FUZZY_MIN_TOKEN_LENGTH = 5


@dataclass(frozen=True)
class GuardVerdict:
    """Outcome of a guard check.

    Attributes
    ----------
    ok:
        Whether the keyword may enter the corpus.
    reason:
        Short human-readable rule name.
    matched:
        Which evidence admitted the keyword (``"HEAD"``, ``"BRAND"``,
        ``"BRAND_FUZZY"`` ...), ``None`` on rejection.
    """

    ok: bool
    reason: str
    matched: str | None = None


def contains_phrase(text: str, phrase: str) -> bool:
    """Whole-token containment of a normalized phrase in normalized text."""
    return f" {phrase} " in f" {text} "


def _remove_phrase(text: str, phrase: str) -> str:
    return f" {text} ".replace(f" {phrase} ", " ").strip()


def _all_generic(tokens: Iterable[str]) -> bool:
    return all(t in GENERIC_WORDS or t in STOPWORDS for t in tokens)


class KeywordGuard:
    """Applies the category-specificity rules.

    Parameters
    ----------
    catalog:
        Category dictionaries; the built-in catalog when omitted.
    fuzzy_threshold:
        Minimum rapidfuzz similarity (0-1) for single-token brand matches.
    """

    def __init__(
        self,
        catalog: Mapping[str, SeedDictionary] | None = None,
        fuzzy_threshold: float = 0.92,
    ) -> None:
        self._catalog = catalog
        self._fuzzy_threshold = fuzzy_threshold

    def is_specific(self, keyword: str, category_id: str) -> GuardVerdict:
        norm = normalize_keyword(keyword)
        if len(norm) < 3:
            return GuardVerdict(False, "too short")
        if has_year_token(norm):
            return GuardVerdict(False, "contains year token")

        tokens = tokenize(norm)
        if any(t in FEMALE_EXCLUSIONS for t in tokens):
            return GuardVerdict(False, "female-specific intent")

        seeds = get_seed_dictionary(category_id, self._catalog)

        if len(tokens) == 1:
            if norm in seeds.head_terms:
                return GuardVerdict(True, "ok", "HEAD_SINGLE")
            if norm in seeds.brands:
                return GuardVerdict(True, "ok", "BRAND_SINGLE")
            if len(norm) >= _FUZZY_MIN_TOKEN_LENGTH:
                single_word_brands = [b for b in seeds.brands if " " not in b]
                if fuzzy_match(norm, single_word_brands, self._fuzzy_threshold):
                    return GuardVerdict(True, "ok", "BRAND_FUZZY")
            return GuardVerdict(False, "single token, not a known head term or brand")

        if _all_generic(tokens):
            return GuardVerdict(False, "generic composition")

        if any(contains_phrase(norm, head) for head in seeds.head_terms):
            return GuardVerdict(True, "ok", "HEAD")

        brands = [b for b in seeds.brands if contains_phrase(norm, b)]
        if brands:
            remainder = norm
            for brand in brands:
                remainder = _remove_phrase(remainder, brand)
            rest = tokenize(remainder)
            if not rest:
                return GuardVerdict(True, "ok", "BRAND")
            if any(t in COMMERCE_WORDS for t in rest):
                return GuardVerdict(True, "ok", "BRAND_COMMERCE")
            if _all_generic(rest):
                return GuardVerdict(False, "brand + generic (low value)")
            return GuardVerdict(True, "ok", "BRAND")

        return GuardVerdict(False, "not category-specific")

    def filter(self, keywords: Iterable[str], category_id: str) -> list[str]:
        """Normalized keywords that pass the guard, order kept, duplicates dropped."""
        kept: dict[str, None] = {}
        for keyword in keywords:
            norm = normalize_keyword(keyword)
            if norm and norm not in kept and self.is_specific(norm, category_id).ok:
                kept[norm] = None
        return list(kept)
