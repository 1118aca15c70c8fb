from __future__ import annotations

import json
import logging
from typing import Any

from groq import AsyncGroq

from .config import DEFAULT_LLM_CONFIG, LLMConfig
from .usage import UsageCounter

logger = logging.getLogger(__name__)

GENERAL_SYSTEM_PROMPT = (
    "You are TasteTwin, a friendly assistant that recommends places, movies, "
    "music, books and brands based on the user's tastes. Answer the user's "
    "message briefly (under 120 words). If it is a greeting or a question "
    "about what you can do, explain that you can recommend things and learn "
    "their preferences as you chat."
)

ROUTING_PROMPT = """\
Classify the user's message into exactly one route and return ONLY JSON:
{"route": "chat_history" | "recommendation" | "general", "confidence": 0.0-1.0}

- chat_history: asks about earlier conversation or previously shown results.
- recommendation: asks for places, movies, music, books, brands or similar things.
- general: greetings, thanks, questions about the assistant, anything else."""

FALLBACK_REPLY = (
    "I can recommend restaurants, movies, music, books, brands and more. "
    "Tell me what you're in the mood for, and mention a city if it's about places."
)


def _persona_context(persona: dict[str, Any] | None) -> str:
    if not persona:
        return "No known preferences yet."
    lines = []
    if persona.get("location"):
        lines.append(f"- Location: {persona['location']}")
    names = [i.name if hasattr(i, "name") else str(i) for i in persona.get("interests", [])]
    if names:
        lines.append(f"- Interests: {', '.join(names[:15])}")
    if persona.get("top_categories"):
        lines.append(f"- Top categories: {', '.join(persona['top_categories'])}")
    return "\n".join(lines) or "No known preferences yet."


async def generate_reply(
    message: str,
    persona: dict[str, Any] | None = None,
    *,
    usage: UsageCounter | None = None,
    session_id: str = "",
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> str:
    """
    Answer a general (non-recommendation) message with the completion service.

    Returns a canned capability message when the LLM is disabled or fails.
    """
    if not config.enabled or not config.api_key:
        return FALLBACK_REPLY

    try:
        client = AsyncGroq(api_key=config.api_key, timeout=config.timeout)
        response = await client.chat.completions.create(
            model=config.model,
            messages=[
                {"role": "system", "content": GENERAL_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Known preferences:\n{_persona_context(persona)}\n\nMessage: {message}",
                },
            ],
            max_tokens=config.max_tokens,
            temperature=0.6,
        )
        if usage is not None:
            usage.record_response(session_id, response)

        reply = (response.choices[0].message.content or "").strip()
        return reply or FALLBACK_REPLY

    except Exception:
        logger.warning("Groq reply failed, using canned response", exc_info=True)
        return FALLBACK_REPLY


async def classify_route(
    message: str,
    *,
    usage: UsageCounter | None = None,
    session_id: str = "",
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> dict[str, Any] | None:
    """Ask the LLM for a route. Returns ``None`` on any failure."""
    if not config.enabled or not config.api_key:
        return None

    try:
        client = AsyncGroq(api_key=config.api_key, timeout=config.timeout)
        response = await client.chat.completions.create(
            model=config.model,
            messages=[
                {"role": "system", "content": ROUTING_PROMPT},
                {"role": "user", "content": message},
            ],
            max_tokens=64,
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        if usage is not None:
            usage.record_response(session_id, response)

        content = response.choices[0].message.content or "{}"
        parsed = json.loads(content)
        return parsed if isinstance(parsed, dict) else None

    except Exception:
        logger.warning("Groq routing failed, using rule-based routing", exc_info=True)
        return None
