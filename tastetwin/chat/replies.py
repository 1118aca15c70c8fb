from __future__ import annotations

from ..errors import (
    PipelineTimeout,
    RecommendationError,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)
from ..recommendations.models import ParsedResponse, RecommendationParameters
from .models import Explanation

_CATEGORY_NOUNS = {
    "place": "places",
    "brand": "brands",
    "artist": "artists",
    "movie": "movies",
    "book": "books",
    "videogame": "video games",
    "podcast": "podcasts",
    "tv_show": "TV shows",
    "destination": "destinations",
    "person": "people",
}


def category_noun(params: RecommendationParameters | None) -> str:
    if params is None:
        return "results"
    return _CATEGORY_NOUNS.get(params.category.segment, "results")


def _suggestions(params: RecommendationParameters | None) -> list[str]:
    if params is None:
        return ["Try rephrasing your request, e.g. \"Italian restaurants in Paris\"."]
    suggestions: list[str] = []
    if params.filter_tags:
        suggestions.append(f"Drop the {', '.join(params.filter_tags)} filter to widen the search.")
    if params.location is not None:
        suggestions.append(f"Try a nearby city instead of {params.location.city}, or leave the location out.")
    else:
        suggestions.append("Add a city, e.g. \"in London\", to focus on a place.")
    suggestions.append(f"Name a specific {category_noun(params).rstrip('s')} you like so I can find similar ones.")
    return suggestions


def explain_empty(params: RecommendationParameters, attempted: list[str]) -> Explanation:
    where = f" in {params.location.city}" if params.location else ""
    return Explanation(
        title="No matches found",
        detail=f"I couldn't find any {category_noun(params)}{where} for that request.",
        attempted=list(attempted),
        suggestions=_suggestions(params),
    )


def explain_failure(exc: RecommendationError, params: RecommendationParameters | None = None) -> Explanation:
    if isinstance(exc, PipelineTimeout):
        return Explanation(
            title="That took too long",
            detail=exc.message,
            attempted=list(exc.attempted),
            suggestions=["Try again in a moment."] + _suggestions(params)[:1],
        )
    if isinstance(exc, ValidationError):
        return Explanation(
            title="I didn't understand that request",
            detail=exc.message,
            suggestions=_suggestions(None),
        )
    if isinstance(exc, UpstreamTimeout):
        title = "The recommendation service timed out"
    elif isinstance(exc, UpstreamError):
        title = "The recommendation service is having trouble"
    else:
        title = "Something went wrong"
    return Explanation(
        title=title,
        detail=exc.message,
        attempted=list(exc.attempted),
        suggestions=["Try again in a moment."] + _suggestions(params),
    )


def results_message(parsed: ParsedResponse, params: RecommendationParameters, fallback_used: bool) -> str:
    count = len(parsed.entities)
    noun = category_noun(params)
    where = f" in {params.location.city}" if params.location else ""
    names = ", ".join(e.name for e in parsed.entities[:3])
    message = f"Here are {count} {noun}{where} you might enjoy: {names}."
    if fallback_used:
        message += " (Personalized results were unavailable, so these come from a direct search.)"
    return message
