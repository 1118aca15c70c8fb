from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from tastetwin.chat.parameters import (
    choose_target_api,
    extract_query_term,
    inject_profile_location,
    schedule_location_update,
    synthesize,
)
from tastetwin.persona.store import InMemoryProfileStore
from tastetwin.qloo.config import QlooConfig
from tastetwin.recommendations.models import (
    DetailLevel,
    EntityCategory,
    LocationFilter,
    RecommendationParameters,
    TargetAPI,
)


class TestSynthesize:
    def test_italian_restaurants_in_paris(self):
        params = synthesize("Italian restaurants in Paris")
        assert params.category == EntityCategory.place
        assert params.location.city == "Paris"
        assert params.filter_tags == ["italian"]
        assert params.target_api == TargetAPI.recommend

    def test_movie_genres(self):
        params = synthesize("recommend a horror or comedy movie")
        assert params.category == EntityCategory.movie
        assert params.filter_tags == ["comedy", "horror"]

    def test_first_row_wins(self):
        # "movie" row comes before "book"
        params = synthesize("a movie based on a book")
        assert params.category == EntityCategory.movie

    def test_sport_brands_use_canonical_tags(self):
        params = synthesize("sport brands like Nike")
        assert params.category == EntityCategory.brand
        assert params.filter_tags == ["sports", "athletic", "fitness"]

    def test_brand_tags_without_sport_cluster(self):
        params = synthesize("luxury fashion brands")
        assert params.filter_tags == ["fashion", "luxury"]

    def test_default_category(self):
        params = synthesize("something fun to do")
        assert params.category == EntityCategory.place
        assert params.filter_tags == []
        assert params.location is None

    def test_take_defaults_to_three(self):
        assert synthesize("recommend a podcast").take == 3

    def test_detail_level_from_wording(self):
        assert synthesize("just list some cafes").detail_level == DetailLevel.minimal
        assert synthesize("a detailed list of cafes").detail_level == DetailLevel.minimal
        assert synthesize("detailed cafe picks").detail_level == DetailLevel.full
        assert synthesize("good cafes").detail_level == DetailLevel.summary

    def test_custom_default_category(self):
        config = QlooConfig(default_category="urn:entity:movie")
        assert synthesize("something fun to do", config=config).category == EntityCategory.movie


class TestTargetApi:
    def test_tag_language(self):
        assert choose_target_api("what genre tags exist for jazz") == TargetAPI.tags

    def test_like_language(self):
        assert choose_target_api("books like Dune") == TargetAPI.recommend

    def test_find_with_category_noun_recommends(self):
        assert choose_target_api("find a movie for tonight") == TargetAPI.recommend

    def test_find_without_noun_searches(self):
        assert choose_target_api("find Blue Bottle Coffee") == TargetAPI.search

    def test_default(self):
        assert choose_target_api("pizza in Rome") == TargetAPI.recommend


class TestQueryTerm:
    def test_like_pattern(self):
        assert extract_query_term("movies like The Matrix, but newer") == "The Matrix"

    def test_without_like(self):
        assert extract_query_term("  jazz bars in Chicago ") == "jazz bars in Chicago"

    def test_like_pattern_strips_punctuation(self):
        assert extract_query_term("something like Inception?") == "Inception"


class TestContextInjection:
    def test_injects_stored_location(self):
        params = RecommendationParameters(query_text="tapas")
        injected = inject_profile_location(params, "Madrid")
        assert injected.location.city == "Madrid"
        assert params.location is None

    def test_keeps_explicit_location(self):
        params = RecommendationParameters(query_text="tapas", location=LocationFilter(city="Seville"))
        assert inject_profile_location(params, "Madrid").location.city == "Seville"

    def test_no_stored_location(self):
        params = RecommendationParameters(query_text="tapas")
        assert inject_profile_location(params, None) is params


class TestLocationUpdate:
    @pytest.mark.asyncio
    async def test_updates_persona_location_in_background(self):
        store = InMemoryProfileStore()
        tasks: set[asyncio.Task] = set()
        task = schedule_location_update(store, "p1", "Paris", tasks)
        assert task in tasks
        await task
        assert await store.get_location("p1") == "Paris"
        assert task not in tasks

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        store = AsyncMock()
        store.set_location.side_effect = RuntimeError("db down")
        tasks: set[asyncio.Task] = set()
        task = schedule_location_update(store, "p1", "Paris", tasks)
        await task
        assert task.exception() is None
        assert "Failed to update persona location" in caplog.text
