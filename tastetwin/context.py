from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx

from .analytics.store import EventStore
from .llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from .llm.usage import UsageCounter
from .persona.manager import PersonaManager
from .persona.resolver import PersonaSignalResolver
from .persona.store import InMemoryProfileStore, ProfileStore
from .qloo.client import QlooClient
from .qloo.config import DEFAULT_QLOO_CONFIG, QlooConfig
from .recommendations.retrieval import RecommendationDispatcher


@dataclass
class ServiceContext:
    """Everything a request needs, built once per process and passed explicitly."""

    qloo_config: QlooConfig
    llm_config: LLMConfig
    store: ProfileStore
    events: EventStore
    usage: UsageCounter
    client: QlooClient
    resolver: PersonaSignalResolver
    dispatcher: RecommendationDispatcher
    personas: PersonaManager
    background_tasks: set[asyncio.Task] = field(default_factory=set)

    async def drain(self) -> None:
        """Wait for outstanding fire-and-forget work."""
        if self.background_tasks:
            await asyncio.gather(*list(self.background_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self.client.aclose()


def build_context(
    qloo_config: QlooConfig = DEFAULT_QLOO_CONFIG,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    *,
    store: ProfileStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceContext:
    store = store if store is not None else InMemoryProfileStore()
    events = EventStore()
    client = QlooClient(qloo_config, events=events, transport=transport)
    return ServiceContext(
        qloo_config=qloo_config,
        llm_config=llm_config,
        store=store,
        events=events,
        usage=UsageCounter(ttl=llm_config.usage_ttl),
        client=client,
        resolver=PersonaSignalResolver(store, client, qloo_config),
        dispatcher=RecommendationDispatcher(client),
        personas=PersonaManager(store),
    )
