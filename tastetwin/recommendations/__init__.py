"""
Recommendation request model and dispatch.

Responsibilities:
- Define the frozen request parameters, signal sets and parsed entities.
- Validate signal ids before they are sent upstream.
- Send one primary request and at most one entity-search fallback.
- Cache slow-changing upstream lookups for a bounded time.
"""
