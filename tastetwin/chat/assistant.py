"""
End-to-end chat pipeline.

A message is classified, then answered from history, by the completion
service, or by the recommendation pipeline:

    synthesize -> inject profile location -> resolve persona signals
    -> dispatch (primary + one fallback) -> parse -> record

The whole request runs under ``QlooConfig.pipeline_budget``. Every failure
or empty outcome is returned as an ``Explanation``, never raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from ..context import ServiceContext
from ..errors import EmptyResult, PipelineTimeout, RecommendationError, ValidationError
from ..llm.groq_client import generate_reply
from ..qloo.location import extract_location
from ..qloo.parser import parse
from ..recommendations.models import RecommendationParameters
from .history import answer_history
from .intent import classify_message
from .models import ChatResponse, ChatRoute
from .parameters import inject_profile_location, schedule_location_update, synthesize
from .replies import explain_empty, explain_failure, results_message

logger = logging.getLogger(__name__)


@dataclass
class _Progress:
    route: ChatRoute = ChatRoute.general
    params: RecommendationParameters | None = None
    attempted: list[str] = field(default_factory=list)


class Assistant:
    def __init__(self, ctx: ServiceContext) -> None:
        self.ctx = ctx

    async def handle(self, profile_id: str, message: str) -> ChatResponse:
        progress = _Progress()
        budget = self.ctx.qloo_config.pipeline_budget
        try:
            try:
                return await asyncio.wait_for(self._handle(profile_id, message, progress), timeout=budget)
            except asyncio.TimeoutError as exc:
                logger.warning("Request exceeded the %.1fs budget", budget)
                raise PipelineTimeout(
                    f"The recommendation service didn't answer within {budget:g} seconds, so I stopped waiting.",
                    attempted=progress.attempted,
                ) from exc
        except (PipelineTimeout, ValidationError) as exc:
            explanation = explain_failure(exc, progress.params)
            return ChatResponse(
                route=progress.route,
                message=explanation.detail,
                explanation=explanation,
                parameters=progress.params.model_dump(mode="json") if progress.params else {},
            )

    async def _handle(self, profile_id: str, message: str, progress: _Progress) -> ChatResponse:
        text = message.strip()
        if not text:
            raise ValidationError("The message is empty.")

        await self.ctx.personas.learn_from_message(profile_id, text)

        intent = await classify_message(
            text,
            usage=self.ctx.usage,
            session_id=profile_id,
            config=self.ctx.llm_config,
        )
        progress.route = intent.route

        match intent.route:
            case ChatRoute.chat_history:
                reply = await answer_history(text, profile_id, self.ctx.store)
                return ChatResponse(route=intent.route, message=reply)
            case ChatRoute.recommendation:
                return await self.recommend(profile_id, text, progress)
            case _:
                persona = await self.ctx.personas.summary(profile_id)
                reply = await generate_reply(
                    text,
                    persona,
                    usage=self.ctx.usage,
                    session_id=profile_id,
                    config=self.ctx.llm_config,
                )
                return ChatResponse(route=ChatRoute.general, message=reply)

    async def recommend(self, profile_id: str, text: str, progress: _Progress | None = None) -> ChatResponse:
        progress = progress or _Progress(route=ChatRoute.recommendation)
        started = time.perf_counter()
        ctx = self.ctx

        location = extract_location(text, ctx.qloo_config)
        params = synthesize(text, location, ctx.qloo_config)
        if location.confident:
            schedule_location_update(ctx.store, profile_id, location.primary_location, ctx.background_tasks)
        else:
            params = inject_profile_location(params, await ctx.store.get_location(profile_id))
        progress.params = params

        signals = await ctx.resolver.resolve_signals(profile_id, params.category)
        progress.attempted.append(
            f"matched {len(signals.entity_ids) + len(signals.tag_ids)} of your saved interests"
        )

        try:
            result = await ctx.dispatcher.dispatch(params, signals)
            progress.attempted.extend(result.attempted)
            parsed = parse(result.payload, params.detail_level, params.category)
            if parsed.is_empty():
                raise EmptyResult(parsed.metadata.note or "No entities returned", attempted=progress.attempted)
        except EmptyResult as exc:
            logger.info("No results for %r", params.query_text)
            explanation = explain_empty(params, exc.attempted)
            return ChatResponse(
                route=ChatRoute.recommendation,
                message=explanation.detail,
                explanation=explanation,
                parameters=params.model_dump(mode="json"),
            )
        except RecommendationError as exc:
            logger.warning("Recommendation pipeline failed: %s", exc.message)
            exc.attempted = progress.attempted + [a for a in exc.attempted if a not in progress.attempted]
            explanation = explain_failure(exc, params)
            return ChatResponse(
                route=ChatRoute.recommendation,
                message=explanation.detail,
                explanation=explanation,
                parameters=params.model_dump(mode="json"),
            )

        await ctx.store.record_entities(profile_id, text, parsed.entities)
        ctx.events.record_event("recommendation", {
            "category": params.category.value,
            "target_api": params.target_api.value,
            "endpoint": result.endpoint.value,
            "fallback_used": result.fallback_used,
            "location": params.location.city if params.location else None,
            "filter_tags": list(params.filter_tags),
            "signal_count": len(signals.entity_ids) + len(signals.tag_ids),
            "results_returned": parsed.metadata.parsed_count,
            "detail_level": parsed.metadata.detail_level.value,
            "response_time_ms": round((time.perf_counter() - started) * 1000, 1),
        })

        return ChatResponse(
            route=ChatRoute.recommendation,
            message=results_message(parsed, params, result.fallback_used),
            entities=parsed.entities,
            metadata=parsed.metadata,
            parameters=params.model_dump(mode="json"),
        )
