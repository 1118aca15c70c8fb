"""
Taste-graph service integration.

Responsibilities:
- Talk to the recommendation, entity search and tag search endpoints.
- Detect locations mentioned in free text.
- Normalize variably nested, size-variable payloads into bounded entity lists.
"""
