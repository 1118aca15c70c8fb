from __future__ import annotations

import asyncio
import logging

from ..chat.keywords import contains_any
from ..errors import ParseError, ResolutionFailure, UpstreamError
from ..qloo.client import QlooClient
from ..qloo.config import DEFAULT_QLOO_CONFIG, QlooConfig
from ..recommendations.models import EntityCategory, Interest, SignalSet
from ..recommendations.signals import (
    is_compatible,
    is_valid_entity_id,
    is_valid_tag_id,
    split_signal_ids,
)
from .store import ProfileStore

logger = logging.getLogger(__name__)

LOOKUP_TAKE = 2

# Interest-name keywords -> the category to look the interest up in. First row wins.
INTEREST_CATEGORY_KEYWORDS: list[tuple[tuple[str, ...], EntityCategory]] = [
    (("movie", "film", "cinema"), EntityCategory.movie),
    (("restaurant", "food", "dining", "cafe", "pizza", "place"), EntityCategory.place),
    (("music", "artist", "musician", "band", "singer"), EntityCategory.artist),
    (("book", "novel", "literature"), EntityCategory.book),
    (("author", "writer"), EntityCategory.person),
    (("destination", "travel", "city", "country"), EntityCategory.destination),
    (("person", "celebrity", "actor"), EntityCategory.person),
    (("podcast",), EntityCategory.podcast),
    (("tv", "show", "series"), EntityCategory.tv_show),
    (("video game", "game", "gaming"), EntityCategory.videogame),
]


def probable_category(name: str) -> EntityCategory | None:
    for keywords, category in INTEREST_CATEGORY_KEYWORDS:
        if contains_any(name, keywords):
            return category
    return None


class PersonaSignalResolver:
    """Converts stored interests into signal ids, one interest at a time.

    Each lookup is bounded by ``config.resolution_timeout``. Accepted ids are
    written back to the store so later requests skip the network.
    """

    def __init__(
        self,
        store: ProfileStore,
        client: QlooClient,
        config: QlooConfig = DEFAULT_QLOO_CONFIG,
    ) -> None:
        self.store = store
        self.client = client
        self.config = config

    async def resolve(self, profile_id: str, target: EntityCategory | None = None) -> list[str]:
        interests = await self.store.get_interests(profile_id)
        return await self.resolve_interests(profile_id, interests, target)

    async def resolve_signals(self, profile_id: str, target: EntityCategory | None = None) -> SignalSet:
        return split_signal_ids(await self.resolve(profile_id, target))

    async def resolve_interests(
        self,
        profile_id: str,
        interests: list[Interest],
        target: EntityCategory | None = None,
    ) -> list[str]:
        resolved: list[str] = []
        seen_names: dict[str, str | None] = {}
        for interest in interests:
            try:
                signal_id = await self._resolve_one(profile_id, interest, target, seen_names)
            except ResolutionFailure as exc:
                logger.warning("%s", exc.message)
                continue
            if signal_id not in resolved:
                resolved.append(signal_id)
        logger.info("Resolved %d/%d interests into signals", len(resolved), len(interests))
        return resolved

    async def _resolve_one(
        self,
        profile_id: str,
        interest: Interest,
        target: EntityCategory | None,
        seen_names: dict[str, str | None],
    ) -> str:
        existing = interest.resolved_signal_id
        if existing and is_compatible(existing, target):
            return existing

        # One lookup per name per batch, failed or not.
        key = interest.name.strip().lower()
        if key in seen_names:
            signal_id = seen_names[key]
            if signal_id is None:
                raise ResolutionFailure(interest.name, "lookup already failed for this name")
        else:
            try:
                signal_id = await self._lookup_with_retry(interest.name, target)
            except ResolutionFailure:
                seen_names[key] = None
                raise
            seen_names[key] = signal_id

        if not (is_valid_entity_id(signal_id) or is_valid_tag_id(signal_id)):
            raise ResolutionFailure(interest.name, f"unusable id {signal_id!r}")
        if not is_compatible(signal_id, target):
            raise ResolutionFailure(interest.name, f"{signal_id} is not a {target.segment}")

        if not existing:
            await self.store.set_resolved_signal(profile_id, interest.id, signal_id)
        return signal_id

    async def _lookup_with_retry(self, name: str, target: EntityCategory | None) -> str:
        category = probable_category(name) or target
        signal_id, reason = await self._lookup(name, category)
        if signal_id is None and target is not None and category is not None:
            logger.info("Retrying %r without a category constraint", name)
            signal_id, reason = await self._lookup(name, None)
        if signal_id is None:
            raise ResolutionFailure(name, reason or "no match")
        return signal_id

    async def _lookup(self, name: str, category: EntityCategory | None) -> tuple[str | None, str | None]:
        try:
            entities = await asyncio.wait_for(
                self.client.lookup_entity(
                    name,
                    category,
                    take=LOOKUP_TAKE,
                    timeout=self.config.resolution_timeout,
                ),
                timeout=self.config.resolution_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Lookup for %r timed out", name)
            return None, "lookup timed out"
        except (UpstreamError, ParseError) as exc:
            logger.warning("Lookup for %r failed", name, exc_info=True)
            return None, exc.message

        for entity in entities:
            entity_id = entity.get("entity_id") or entity.get("id")
            if entity_id:
                return str(entity_id), None
        return None, "no match"
