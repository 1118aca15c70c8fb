from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from tastetwin.errors import UpstreamError
from tastetwin.persona.resolver import PersonaSignalResolver, probable_category
from tastetwin.persona.store import InMemoryProfileStore
from tastetwin.qloo.config import QlooConfig
from tastetwin.recommendations.models import EntityCategory, Interest

UUID_ID = "8f14e45f-ceea-467a-9d3c-7c2b1f0c1e2a"


@pytest.fixture
def store():
    return InMemoryProfileStore()


@pytest.fixture
def client():
    mock = AsyncMock()
    mock.lookup_entity.return_value = [{"entity_id": "urn:entity:brand:nike", "name": "Nike"}]
    return mock


def _resolver(store, client, **config) -> PersonaSignalResolver:
    return PersonaSignalResolver(store, client, QlooConfig(**config))


class TestProbableCategory:
    def test_keyword_rows(self):
        assert probable_category("horror movies") == EntityCategory.movie
        assert probable_category("indie band") == EntityCategory.artist
        assert probable_category("Nike") is None


class TestResolver:
    @pytest.mark.asyncio
    async def test_resolved_id_is_reused(self, store, client):
        await store.add_interest("p1", Interest(name="Nike"))
        resolver = _resolver(store, client)

        first = await resolver.resolve("p1", EntityCategory.brand)
        second = await resolver.resolve("p1", EntityCategory.brand)

        assert first == second == ["urn:entity:brand:nike"]
        assert client.lookup_entity.await_count == 1
        stored = await store.get_interests("p1")
        assert stored[0].resolved_signal_id == "urn:entity:brand:nike"

    @pytest.mark.asyncio
    async def test_uuid_is_used_without_lookup(self, store, client):
        await store.add_interest("p1", Interest(name="Nike", resolved_signal_id=UUID_ID))
        assert await _resolver(store, client).resolve("p1", EntityCategory.brand) == [UUID_ID]
        client.lookup_entity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_incompatible_stored_id_triggers_lookup_but_is_kept(self, store, client):
        await store.add_interest("p1", Interest(name="Nike", resolved_signal_id="urn:entity:movie:nike-doc"))
        resolved = await _resolver(store, client).resolve("p1", EntityCategory.brand)
        assert resolved == ["urn:entity:brand:nike"]
        stored = await store.get_interests("p1")
        assert stored[0].resolved_signal_id == "urn:entity:movie:nike-doc"

    @pytest.mark.asyncio
    async def test_retries_without_category(self, store, client):
        client.lookup_entity.side_effect = [[], [{"entity_id": "E42", "name": "Nike"}]]
        await store.add_interest("p1", Interest(name="Nike"))

        resolved = await _resolver(store, client).resolve("p1", EntityCategory.brand)

        assert resolved == ["E42"]
        categories = [call.args[1] for call in client.lookup_entity.await_args_list]
        assert categories == [EntityCategory.brand, None]

    @pytest.mark.asyncio
    async def test_incompatible_lookup_result_is_rejected(self, store, client):
        client.lookup_entity.return_value = [{"entity_id": "urn:entity:movie:1", "name": "Nike"}]
        await store.add_interest("p1", Interest(name="Nike"))

        assert await _resolver(store, client).resolve("p1", EntityCategory.brand) == []
        stored = await store.get_interests("p1")
        assert stored[0].resolved_signal_id is None

    @pytest.mark.asyncio
    async def test_timeout_skips_interest(self, store, client):
        async def lookup(name, category=None, take=2, timeout=None):
            if name == "Slow":
                await asyncio.sleep(1)
            return [{"entity_id": f"urn:entity:brand:{name.lower()}", "name": name}]

        client.lookup_entity.side_effect = lookup
        await store.add_interest("p1", Interest(name="Slow"))
        await store.add_interest("p1", Interest(name="Adidas"))

        resolved = await _resolver(store, client, resolution_timeout=0.01).resolve("p1", EntityCategory.brand)
        assert resolved == ["urn:entity:brand:adidas"]

    @pytest.mark.asyncio
    async def test_upstream_failure_skips_interest(self, store, client, caplog):
        client.lookup_entity.side_effect = UpstreamError("down", endpoint="/search")
        await store.add_interest("p1", Interest(name="Nike"))
        assert await _resolver(store, client).resolve("p1") == []
        assert "Could not resolve interest" in caplog.text

    @pytest.mark.asyncio
    async def test_duplicate_names_looked_up_once(self, store, client):
        await store.add_interest("p1", Interest(name="Nike"))
        await store.add_interest("p1", Interest(name="nike"))
        resolved = await _resolver(store, client).resolve("p1")
        assert resolved == ["urn:entity:brand:nike"]
        assert client.lookup_entity.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_name_not_looked_up_again(self, store, client):
        client.lookup_entity.side_effect = UpstreamError("down", endpoint="/search")
        await store.add_interest("p1", Interest(name="Nike"))
        await store.add_interest("p1", Interest(name="nike"))
        assert await _resolver(store, client).resolve("p1") == []
        assert client.lookup_entity.await_count == 1

    @pytest.mark.asyncio
    async def test_resolve_signals_splits_ids(self, store, client):
        await store.add_interest("p1", Interest(name="Nike"))
        await store.add_interest("p1", Interest(name="jazz", resolved_signal_id="urn:tag:genre:music:jazz"))
        signals = await _resolver(store, client).resolve_signals("p1")
        assert signals.entity_ids == ["urn:entity:brand:nike"]
        assert signals.tag_ids == ["urn:tag:genre:music:jazz"]


class TestWriteOnce:
    @pytest.mark.asyncio
    async def test_second_write_is_ignored(self, store):
        interest = await store.add_interest("p1", Interest(name="Nike"))
        assert await store.set_resolved_signal("p1", interest.id, "E1") == "E1"
        assert await store.set_resolved_signal("p1", interest.id, "E2") == "E1"

    @pytest.mark.asyncio
    async def test_unknown_interest(self, store):
        assert await store.set_resolved_signal("p1", "missing", "E1") is None
