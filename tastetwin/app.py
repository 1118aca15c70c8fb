from __future__ import annotations

import os
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from starlette.middleware.sessions import SessionMiddleware

from .analytics.aggregator import compute_analytics
from .chat.assistant import Assistant
from .chat.models import (
    ChatRequest,
    ChatResponse,
    FeedbackRequest,
    FeedbackResponse,
    InterestRequest,
)
from .context import ServiceContext, build_context
from .errors import UpstreamError
from .qloo.location import location_suggestions
from .recommendations.models import EntityCategory


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "context", None) is None:
        app.state.context = build_context()
    yield
    await app.state.context.aclose()


app = FastAPI(title="TasteTwin Recommendation API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "tastetwin-secret-change-in-production"),
)


async def get_context(request: Request) -> ServiceContext:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        ctx = build_context()
        request.app.state.context = ctx
    return ctx


def get_profile_id(request: Request) -> str:
    profile_id = request.session.get("profile_id")
    if not profile_id:
        profile_id = uuid.uuid4().hex
        request.session["profile_id"] = profile_id
    return profile_id


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/locations/suggest")
def suggest_locations(q: str = "") -> dict:
    return {"suggestions": location_suggestions(q)}


# ── Chat endpoint ────────────────────────────────────────────────────────


@app.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    profile_id: str = Depends(get_profile_id),
    ctx: ServiceContext = Depends(get_context),
) -> ChatResponse:
    return await Assistant(ctx).handle(profile_id, body.message)


# ── Persona endpoints ────────────────────────────────────────────────────


@app.get("/persona")
async def persona(
    profile_id: str = Depends(get_profile_id),
    ctx: ServiceContext = Depends(get_context),
) -> dict:
    summary = await ctx.personas.summary(profile_id)
    summary["interests"] = [i.model_dump(mode="json") for i in summary["interests"]]
    return summary


@app.post("/persona/interests")
async def add_interest(
    body: InterestRequest,
    profile_id: str = Depends(get_profile_id),
    ctx: ServiceContext = Depends(get_context),
) -> dict:
    interest, created = await ctx.personas.add_interest(
        profile_id,
        body.name,
        category=body.category,
        confidence=body.confidence,
    )
    return {
        "status": "created" if created else "exists",
        "interest": interest.model_dump(mode="json"),
    }


@app.post("/feedback", response_model=FeedbackResponse)
async def feedback(
    body: FeedbackRequest,
    profile_id: str = Depends(get_profile_id),
    ctx: ServiceContext = Depends(get_context),
) -> FeedbackResponse:
    interest = await ctx.personas.apply_feedback(profile_id, body.interest_name, body.is_positive)
    if interest is None:
        raise HTTPException(status_code=404, detail=f"No interest named {body.interest_name!r}")
    ctx.events.record_event("feedback", {
        "interest_name": interest.name,
        "is_positive": body.is_positive,
        "confidence": interest.confidence,
    })
    return FeedbackResponse(status="recorded", interest_name=interest.name, confidence=interest.confidence)


@app.get("/tags/types")
async def tag_types(category: str = "", ctx: ServiceContext = Depends(get_context)) -> dict:
    parsed = None
    if category:
        parsed = EntityCategory.parse(category)
        if parsed is None:
            raise HTTPException(status_code=422, detail=f"Unknown category {category!r}")
    try:
        payload = await ctx.client.tag_types(parsed)
    except UpstreamError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
    return {"category": parsed.value if parsed else None, "tag_types": payload}


# ── Usage and analytics ──────────────────────────────────────────────────


@app.get("/usage")
async def usage(
    profile_id: str = Depends(get_profile_id),
    ctx: ServiceContext = Depends(get_context),
) -> dict:
    return {
        "total": ctx.usage.snapshot(),
        "session": ctx.usage.session_totals(profile_id),
    }


@app.get("/analytics")
async def analytics(ctx: ServiceContext = Depends(get_context)) -> dict:
    body = compute_analytics(ctx.events.get_events())
    body["cache"] = {"tag_types": ctx.client.cache_stats()}
    return body
