"""Unit tests for candidate generation and anchor assignment."""

from __future__ import annotations

import pytest

from src.models.corpus import Anchor, IntentBucket
from src.services.anchor_assignment import assign_anchor, infer_intent
from src.services.candidate_generator import CandidateGenerator, anchor_token
from src.utils.text_normalizer import has_year_token


@pytest.fixture()
def generator() -> CandidateGenerator:
    return CandidateGenerator()


def _anchors(*names: str) -> list[Anchor]:
    return [Anchor(id=name, order=i) for i, name in enumerate(names)]


# ======================================================================
# CandidateGenerator
# ======================================================================


class TestGenerate:
    def test_sorted_and_limited(self, generator) -> None:
        candidates = generator.generate("shaving", "Razor", limit=50)
        assert len(candidates) == 50
        assert candidates == sorted(candidates)

    def test_deterministic(self, generator) -> None:
        assert generator.generate("shaving", "Razor", 100) == generator.generate("shaving", "Razor", 100)

    def test_candidates_are_usable(self, generator) -> None:
        seeds = generator.seeds_for("shaving")
        for keyword in generator.generate("shaving", "Trimmer", limit=300):
            assert len(keyword.split()) >= 2
            assert not has_year_token(keyword)
            assert any(term in keyword for term in (*seeds.head_terms, *seeds.brands))

    def test_anchor_token_tags_candidates(self, generator) -> None:
        candidates = generator.generate("shaving", "Cartridge", limit=5000)
        assert "gillette razor cartridge" in candidates

    def test_unknown_category(self, generator) -> None:
        assert generator.generate("unknown-category", "Razor") == []


class TestSeeds:
    def test_discovery_seeds(self, generator) -> None:
        seeds = generator.discovery_seeds("shaving")
        assert seeds == sorted(seeds)
        assert "razor burn remedy" in seeds
        assert "gillette shaving" in seeds
        assert "razor price" in seeds
        assert all(len(s) >= 3 for s in seeds)

    def test_expansion_seeds(self, generator) -> None:
        seeds = generator.expansion_seeds("shaving", "Price & Offers")
        assert "shaving price offers" in seeds
        assert "best razor price offers" in seeds
        assert len(seeds) == 18

    def test_anchor_token(self) -> None:
        assert anchor_token("Price & Offers") == "price"
        assert anchor_token("Razor") == "razor"
        assert anchor_token("") == ""


# ======================================================================
# Intent / anchor assignment
# ======================================================================


class TestInferIntent:
    @pytest.mark.parametrize(
        ("text", "intent"),
        [
            ("buy gillette razor", IntentBucket.DECISION),
            ("best razor", IntentBucket.CONSIDERATION),
            ("razor burn", IntentBucket.PROBLEM),
            ("gillette mach3", IntentBucket.DISCOVERY),
            ("best razor price", IntentBucket.DECISION),
        ],
    )
    def test_buckets(self, text, intent) -> None:
        assert infer_intent(text) == intent


class TestAssignAnchor:
    def test_token_match_wins(self) -> None:
        assert assign_anchor("philips trimmer", _anchors("Razor", "Trimmer")) == "Trimmer"

    def test_short_anchor_tokens_ignored(self) -> None:
        assert assign_anchor("razor for men", _anchors("For Men", "Razor")) == "Razor"

    def test_decision_routes_to_first_anchor(self) -> None:
        assert assign_anchor("gillette price", _anchors("Razor", "Trimmer")) == "Razor"

    def test_problem_routes_to_second_anchor(self) -> None:
        assert assign_anchor("shaving rash fix", _anchors("Razor", "Trimmer")) == "Trimmer"

    def test_hash_fallback_is_stable(self) -> None:
        anchors = _anchors("Razor", "Trimmer", "Blade")
        first = assign_anchor("gillette mach3", anchors)
        assert first in {"Razor", "Trimmer", "Blade"}
        assert assign_anchor("Gillette  Mach3", anchors) == first

    def test_merged_anchor_skipped(self) -> None:
        anchors = [
            Anchor(id="Razor", order=0, merged_into="Trimmer"),
            Anchor(id="Trimmer", order=1),
        ]
        assert assign_anchor("gillette razor", anchors) == "Trimmer"

    def test_no_open_anchor(self) -> None:
        anchors = [Anchor(id="Razor", order=0, merged_into="Trimmer")]
        with pytest.raises(ValueError):
            assign_anchor("gillette razor", anchors)
