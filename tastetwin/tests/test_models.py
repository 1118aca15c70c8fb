from __future__ import annotations

import pytest

from tastetwin.recommendations.models import (
    DetailLevel,
    EntityCategory,
    Interest,
    RecommendationParameters,
    SignalSet,
)
from tastetwin.recommendations.signals import (
    clean_signals,
    is_compatible,
    is_valid_entity_id,
    is_valid_tag_id,
    split_signal_ids,
)

UUID_ID = "8f14e45f-ceea-467a-9d3c-7c2b1f0c1e2a"


class TestRecommendationParameters:
    @pytest.mark.parametrize("requested", [-5, 0, 1, 2])
    def test_take_minimum_is_two(self, requested):
        assert RecommendationParameters(query_text="x", take=requested).take == 2

    def test_take_capped(self):
        assert RecommendationParameters(query_text="x", take=500).take == 10

    def test_take_default(self):
        assert RecommendationParameters(query_text="x").take == 3

    def test_evolve_revalidates_and_copies(self):
        params = RecommendationParameters(query_text="x", take=5)
        evolved = params.evolve(take=1, query_text="y")
        assert evolved.take == 2
        assert evolved.query_text == "y"
        assert params.take == 5
        assert params.query_text == "x"

    def test_frozen(self):
        params = RecommendationParameters(query_text="x")
        with pytest.raises(Exception):
            params.take = 7

    def test_category_must_be_enumerated(self):
        with pytest.raises(ValueError):
            RecommendationParameters(query_text="x", category="urn:entity:spaceship")


class TestInterest:
    def test_confidence_clamped_on_create(self):
        assert Interest(name="jazz", confidence=1.7).confidence == 1.0
        assert Interest(name="jazz", confidence=-0.2).confidence == 0.0

    def test_confidence_clamped_on_write(self):
        interest = Interest(name="jazz", confidence=0.5)
        interest.confidence = 3
        assert interest.confidence == 1.0


class TestDetailLevel:
    def test_at_most_only_downgrades(self):
        assert DetailLevel.full.at_most(DetailLevel.tiny) == DetailLevel.tiny
        assert DetailLevel.minimal.at_most(DetailLevel.tiny) == DetailLevel.minimal
        assert DetailLevel.summary.at_most(DetailLevel.summary) == DetailLevel.summary


class TestSignalShapes:
    @pytest.mark.parametrize("value", ["urn:entity:brand:nike", "E12AB34", UUID_ID, UUID_ID.upper()])
    def test_valid_entity_ids(self, value):
        assert is_valid_entity_id(value)

    @pytest.mark.parametrize("value", ["", "nike", "12345", "urn:tag:genre:comedy", None, 42, "e12"])
    def test_invalid_entity_ids(self, value):
        assert not is_valid_entity_id(value)

    def test_tag_ids(self):
        assert is_valid_tag_id("urn:tag:genre:media:comedy")
        assert not is_valid_tag_id("comedy")

    def test_clean_drops_invalid_and_duplicates(self):
        signals = SignalSet(
            entity_ids=["urn:entity:movie:1", "garbage", "urn:entity:movie:1", UUID_ID],
            tag_ids=["urn:tag:genre:comedy", "comedy"],
            audience_ids=["urn:audience:x", "nope"],
        )
        cleaned = clean_signals(signals)
        assert cleaned.entity_ids == ["urn:entity:movie:1", UUID_ID]
        assert cleaned.tag_ids == ["urn:tag:genre:comedy"]
        assert cleaned.audience_ids == ["urn:audience:x"]

    def test_split_signal_ids(self):
        split = split_signal_ids(["urn:tag:genre:jazz", "E99", "bogus"])
        assert split.entity_ids == ["E99"]
        assert split.tag_ids == ["urn:tag:genre:jazz"]


class TestCompatibility:
    def test_same_segment(self):
        assert is_compatible("urn:entity:brand:nike", EntityCategory.brand)

    def test_different_segment(self):
        assert not is_compatible("urn:entity:movie:123", EntityCategory.brand)

    def test_uuid_is_always_compatible(self):
        assert is_compatible(UUID_ID, EntityCategory.brand)

    def test_no_target(self):
        assert is_compatible("urn:entity:movie:123", None)
