from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..recommendations.models import NormalizedEntity, ParseMetadata


class ChatRoute(str, Enum):
    chat_history = "chat_history"
    recommendation = "recommendation"
    general = "general"


class IntentResult(BaseModel):
    route: ChatRoute
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""
    matched_keywords: list[str] = Field(default_factory=list)


class Explanation(BaseModel):
    """User-facing account of a failed or empty outcome."""

    title: str
    detail: str
    attempted: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)


class ChatResponse(BaseModel):
    route: ChatRoute
    message: str
    entities: list[NormalizedEntity] = Field(default_factory=list)
    metadata: ParseMetadata | None = None
    explanation: Explanation | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class InterestRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: str | None = None
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)


class FeedbackRequest(BaseModel):
    interest_name: str = Field(..., min_length=1)
    is_positive: bool


class FeedbackResponse(BaseModel):
    status: str
    interest_name: str
    confidence: float | None = None
