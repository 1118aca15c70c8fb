from __future__ import annotations

from collections import Counter
from typing import Any


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    calls = [e for e in events if e["type"] == "qloo_call"]
    recommendations = [e for e in events if e["type"] == "recommendation"]
    feedback = [e for e in events if e["type"] == "feedback"]

    # Outbound calls per endpoint
    endpoint_counter: Counter[str] = Counter(c.get("endpoint", "unknown") for c in calls)
    failures = [c for c in calls if not c.get("ok")]
    failure_counter: Counter[str] = Counter(c.get("endpoint", "unknown") for c in failures)

    # Average latency
    latencies = [c["latency_ms"] for c in calls if "latency_ms" in c]
    avg_latency = round(sum(latencies) / len(latencies), 1) if latencies else 0.0

    # Top categories and locations
    category_counter: Counter[str] = Counter(r.get("category", "unknown") for r in recommendations)
    location_counter: Counter[str] = Counter(
        r["location"] for r in recommendations if r.get("location")
    )

    fallbacks = sum(1 for r in recommendations if r.get("fallback_used"))
    times = [r["response_time_ms"] for r in recommendations if "response_time_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    positive = sum(1 for f in feedback if f.get("is_positive"))
    negative = len(feedback) - positive

    return {
        "total_calls": len(calls),
        "calls_per_endpoint": dict(endpoint_counter),
        "failures": {
            "total": len(failures),
            "per_endpoint": dict(failure_counter),
        },
        "avg_latency_ms": avg_latency,
        "total_recommendations": len(recommendations),
        "fallback_count": fallbacks,
        "fallback_rate": round(fallbacks / len(recommendations) * 100, 1) if recommendations else 0.0,
        "avg_response_time_ms": avg_time,
        "top_categories": [{"name": n, "count": c} for n, c in category_counter.most_common(10)],
        "top_locations": [{"name": n, "count": c} for n, c in location_counter.most_common(10)],
        "feedback_summary": {
            "total": len(feedback),
            "positive": positive,
            "negative": negative,
            "satisfaction_rate": round(positive / len(feedback) * 100, 1) if feedback else 0.0,
        },
    }
