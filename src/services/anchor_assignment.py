"""Pure anchor assignment and intent inference for new keyword rows."""

from __future__ import annotations

from collections.abc import Sequence

from src.config.seed_dictionaries import (
    INTENT_CONSIDERATION_WORDS,
    INTENT_DECISION_WORDS,
    INTENT_PROBLEM_WORDS,
)
from src.models.corpus import Anchor, IntentBucket
from src.utils.text_normalizer import normalize_keyword, rolling_hash, tokenize

# Anchor-name tokens this short ("for", "men") are too common to route on.
_MIN_ANCHOR_TOKEN_LENGTH = 4


def infer_intent(text: str) -> IntentBucket:
    """Bucket a keyword by purchase intent; first matching bucket wins."""
    tokens = set(tokenize(normalize_keyword(text)))
    if tokens & INTENT_DECISION_WORDS:
        return IntentBucket.DECISION
    if tokens & INTENT_CONSIDERATION_WORDS:
        return IntentBucket.CONSIDERATION
    if tokens & INTENT_PROBLEM_WORDS:
        return IntentBucket.PROBLEM
    return IntentBucket.DISCOVERY


def assign_anchor(
    text: str,
    anchors: Sequence[Anchor],
    intent: IntentBucket | None = None,
) -> str:
    """Choose the anchor id for ``text``.

    Token match on anchor names first, then intent routing, then a stable
    hash.  Merged anchors are never chosen.

    Raises:
        ValueError: If no open anchor exists.
    """
    candidates = sorted((a for a in anchors if a.is_open), key=lambda a: a.order)
    if not candidates:
        raise ValueError("no open anchors to assign to")

    norm = normalize_keyword(text)
    tokens = set(tokenize(norm))
    for anchor in candidates:
        name_tokens = [
            t for t in tokenize(normalize_keyword(anchor.id)) if len(t) >= _MIN_ANCHOR_TOKEN_LENGTH
        ]
        if any(t in tokens for t in name_tokens):
            return anchor.id

    intent = intent or infer_intent(norm)
    if intent in (IntentBucket.DECISION, IntentBucket.CONSIDERATION):
        return candidates[0].id
    if intent == IntentBucket.PROBLEM:
        return candidates[1].id if len(candidates) > 1 else candidates[-1].id

    return candidates[abs(rolling_hash(norm)) % len(candidates)].id
