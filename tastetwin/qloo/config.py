from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class QlooConfig:
    api_key: str = os.getenv("QLOO_API_KEY", "")
    base_url: str = os.getenv("QLOO_API_URL", "https://hackathon.api.qloo.com")
    timeout: float = 10.0
    resolution_timeout: float = 5.0
    default_take: int = 3
    min_take: int = 2
    max_take: int = int(os.getenv("QLOO_MAX_TAKE", "10"))
    default_category: str = "urn:entity:place"
    default_radius: int = 10
    wide_radius: int = 25
    pipeline_budget: float = float(os.getenv("PIPELINE_BUDGET_SECONDS", "30"))
    tag_types_ttl: int = 600


DEFAULT_QLOO_CONFIG = QlooConfig()
