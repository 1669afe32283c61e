"""Prometheus collectors shared across the API and the worker."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)
GENERATION_REQUESTS = Counter(
    "text_generation_requests_total",
    "Text generation calls by call site and outcome",
    ["call_site", "outcome"],
)
GENERATION_LATENCY = Histogram(
    "text_generation_seconds",
    "Text generation call latency",
    ["call_site"],
)
RECOMMENDATIONS_CREATED = Counter(
    "recommendations_created_total",
    "Recommendation rows written by the generator",
)
