"""Prometheus metrics for monitoring.

Tracks request latency, GitHub and AI call durations, enrichment outcomes
and evaluation queue traffic.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
APP_INFO = Info("tr_app", "TalentRank application info")

# HTTP metrics
HTTP_REQUESTS_TOTAL = Counter(
    "tr_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "tr_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# GitHub API metrics
GITHUB_API_CALLS = Counter(
    "tr_github_api_calls_total",
    "Total GitHub API calls",
    ["endpoint", "status"],
)

GITHUB_API_DURATION = Histogram(
    "tr_github_api_duration_seconds",
    "GitHub API call duration",
    ["endpoint"],
)

# Developer cache metrics
CACHE_HITS = Counter(
    "tr_cache_hits_total",
    "Developer cache hits",
)

CACHE_MISSES = Counter(
    "tr_cache_misses_total",
    "Developer cache misses",
)

CACHE_ERRORS = Counter(
    "tr_cache_errors_total",
    "Developer cache read/write failures",
    ["operation"],
)

# AI client metrics
AI_CALLS = Counter(
    "tr_ai_calls_total",
    "Total AI completion calls",
    ["model", "type", "status"],
)

AI_CALL_DURATION = Histogram(
    "tr_ai_call_duration_seconds",
    "AI completion call duration",
    ["model"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# Enrichment metrics
ENRICHMENTS_TOTAL = Counter(
    "tr_enrichments_total",
    "Developer enrichment runs",
    ["outcome"],
)

ENRICHMENT_DURATION = Histogram(
    "tr_enrichment_duration_seconds",
    "Developer enrichment duration",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

NATION_PREDICTIONS = Counter(
    "tr_nation_predictions_total",
    "Nation predictions by stage",
    ["source"],
)

# Queue metrics
QUEUE_PUBLISHED = Counter(
    "tr_queue_published_total",
    "Evaluation tasks published",
)

QUEUE_REDELIVERED = Counter(
    "tr_queue_redelivered_total",
    "Evaluation tasks redelivered after handler failure",
)

EVALUATIONS_TOTAL = Counter(
    "tr_evaluations_total",
    "Evaluation worker outcomes",
    ["status"],
)

BATCH_IN_FLIGHT = Gauge(
    "tr_batch_in_flight",
    "Usernames currently being enriched by batch workers",
)
