"""Text normalization utilities for keyword strings.

This module handles three distinct concerns:

1. **Keyword normalization** -- lowercases, strips diacritics and
   punctuation, and collapses whitespace so that "Gillette  Razor!",
   "gillette razor" and "Gillétte razor" all dedupe to one corpus row.
   Every dedupe and every provider-response join goes through
   :func:`normalize_keyword`.

2. **Stable identity** -- :func:`keyword_row_id` hashes the normalized text
   with the category so re-inserting the same keyword is idempotent, and
   :func:`rolling_hash` provides the 32-bit signed string hash used by the
   deterministic anchor fallback.

3. **Fuzzy matching** -- :func:`fuzzy_match` wraps rapidfuzz for the
   keyword guard's tolerance of common brand misspellings
   (e.g. "gilette" -> "gillette").
"""

from __future__ import annotations

import hashlib
import re
import unicodedata

from rapidfuzz import fuzz, process

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_YEAR_TOKEN = re.compile(r"\b(202[3-7])\b")


def normalize_keyword(raw: str) -> str:
    """Normalize a keyword for deduplication and response matching.

    Args:
        raw: Keyword as generated or as echoed back by the provider.

    Returns:
        Lowercase ASCII keyword with single spaces, or ``""`` for empty input.
    """
    if not raw:
        return ""
    text = unicodedata.normalize("NFKD", raw.lower().strip())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_ALNUM.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(keyword: str) -> list[str]:
    """Split a normalized keyword into tokens."""
    return [t for t in keyword.split(" ") if t]


def has_year_token(keyword: str) -> bool:
    """Return True when the keyword pins a calendar year (2023-2027)."""
    return bool(_YEAR_TOKEN.search(keyword))


def keyword_row_id(keyword: str, category_id: str) -> str:
    """Deterministic row id: sha256 of ``"<normalized>|<category>"``."""
    payload = f"{normalize_keyword(keyword)}|{category_id}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def rolling_hash(text: str) -> int:
    """32-bit signed ``h = h*31 + ord(c)`` string hash.

    Identical across processes and Python versions (unlike ``hash()``,
    which is salted per interpreter run).
    """
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def fuzzy_match(
    query: str,
    candidates: list[str],
    threshold: float = 0.92,
) -> tuple[str, float] | None:
    """Find the best fuzzy match for a query among candidates.

    Uses rapidfuzz ``ratio`` (plain edit-distance similarity); keywords are
    short, so token reordering is not wanted here.

    Args:
        query: The string to match.
        candidates: Candidate strings.
        threshold: Minimum similarity (0.0--1.0) to accept.

    Returns:
        ``(best_match, score)`` if a candidate meets the threshold, else None.
    """
    if not candidates or not query:
        return None

    result = process.extractOne(
        query,
        candidates,
        scorer=fuzz.ratio,
        score_cutoff=threshold * 100,
    )
    if result is None:
        return None

    match, score, _index = result
    return match, score / 100.0
