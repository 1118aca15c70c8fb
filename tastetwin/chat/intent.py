from __future__ import annotations

import logging

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import classify_route
from ..llm.usage import UsageCounter
from .keywords import matching_keywords
from .models import ChatRoute, IntentResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Keyword sets
# ---------------------------------------------------------------------------

HISTORY_KEYWORDS = [
    "do you remember", "what did i", "did i tell", "my preferences",
    "what did we talk about", "previous conversation", "earlier",
    "before", "last time", "remember when", "what was that",
]

RECOMMENDATION_KEYWORDS = [
    "recommend", "recomend", "suggestion", "suggest", "similar", "like", "preference",
    "restaurant", "movie", "film", "brand", "artist", "book", "game", "podcast",
    "find", "search", "look for", "discover", "best", "top",
    "pizza", "food", "cafe", "bar", "dining", "place", "spot", "venue",
]

GENERAL_KEYWORDS = [
    "hello", "hi", "hey", "how are you", "what is", "explain",
    "help", "thanks", "thank you", "bye", "goodbye", "tell me about",
]

HISTORY_CONFIDENCE = 0.9
RECOMMENDATION_CONFIDENCE = 0.8
GENERAL_CONFIDENCE = 0.9
UNMATCHED_CONFIDENCE = 0.5


def classify(text: str) -> IntentResult:
    """Route ``text`` by keyword precedence.

    History wins outright. Recommendation needs a recommendation keyword and
    no general keyword. Everything else is general.
    """
    history = matching_keywords(text, HISTORY_KEYWORDS)
    if history:
        return IntentResult(
            route=ChatRoute.chat_history,
            confidence=HISTORY_CONFIDENCE,
            reasoning="Asks about earlier conversation",
            matched_keywords=history,
        )

    recommendation = matching_keywords(text, RECOMMENDATION_KEYWORDS)
    general = matching_keywords(text, GENERAL_KEYWORDS)
    if recommendation and not general:
        return IntentResult(
            route=ChatRoute.recommendation,
            confidence=RECOMMENDATION_CONFIDENCE,
            reasoning="Mentions recommendation or category keywords",
            matched_keywords=recommendation,
        )

    return IntentResult(
        route=ChatRoute.general,
        confidence=GENERAL_CONFIDENCE if general else UNMATCHED_CONFIDENCE,
        reasoning="General conversation" if general else "No routing keywords found",
        matched_keywords=general,
    )


async def classify_message(
    text: str,
    *,
    usage: UsageCounter | None = None,
    session_id: str = "",
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> IntentResult:
    """Rule-based routing, with the LLM consulted first only when ``ai_routing`` is on."""
    if config.ai_routing:
        parsed = await classify_route(text, usage=usage, session_id=session_id, config=config)
        if parsed:
            try:
                return IntentResult(
                    route=ChatRoute(parsed.get("route")),
                    confidence=float(parsed.get("confidence", 0.7)),
                    reasoning="LLM routing",
                )
            except (TypeError, ValueError):
                logger.warning("LLM returned an unusable route %r, using rules", parsed)

    result = classify(text)
    logger.info("Routed message to %s (%s)", result.route.value, result.reasoning)
    return result
