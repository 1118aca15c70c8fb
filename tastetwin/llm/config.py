from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class LLMConfig:
    api_key: str = os.getenv("GROQ_API_KEY", "")
    model: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
    timeout: float = 10.0
    max_tokens: int = 1024
    enabled: bool = _flag("LLM_ENABLED", "true")
    # Rule-based routing is authoritative unless this is switched on.
    ai_routing: bool = _flag("AI_ROUTING", "false")
    usage_ttl: int = 60


DEFAULT_LLM_CONFIG = LLMConfig()
