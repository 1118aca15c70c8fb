from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache

# Inflections accepted after a keyword: "restaurants", "recommended", "recommendations".
_SUFFIX = r"(?:s|es|ed|ing|ations?)?"
_MIN_INFLECTED_LENGTH = 3


@lru_cache(maxsize=1024)
def _pattern(keyword: str) -> re.Pattern[str]:
    words = [re.escape(w) for w in keyword.lower().split()]
    body = r"\s+".join(words)
    suffix = _SUFFIX if len(keyword) >= _MIN_INFLECTED_LENGTH else ""
    return re.compile(rf"(?<![\w-]){body}{suffix}(?![\w-])")


def contains_keyword(text: str, keyword: str) -> bool:
    """Whole-word, case-insensitive keyword test ("hi" does not match "this")."""
    return bool(_pattern(keyword).search(text.lower()))


def matching_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    lowered = text.lower()
    return [k for k in keywords if _pattern(k).search(lowered)]


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(_pattern(k).search(lowered) for k in keywords)
