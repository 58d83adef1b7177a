"""Prometheus metrics for the marketing chatbot."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


# ── HTTP metrics ─────────────────────────────────────────────
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Model rotation metrics ───────────────────────────────────
LLM_ATTEMPTS = Counter(
    "llm_attempts_total",
    "Provider invocations made by the rotation engine",
    ["provider", "outcome"],  # success / auth / capacity / unknown
)

LLM_LATENCY = Histogram(
    "llm_attempt_latency_seconds",
    "Latency of a single provider invocation",
    ["provider"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

LLM_FAILOVERS = Counter(
    "llm_failovers_total",
    "Calls answered by an entry after at least one failed attempt",
    ["provider"],
)

LLM_POOL_EXHAUSTED = Counter(
    "llm_pool_exhausted_total",
    "Calls that consumed every attempt without a reply",
)

LLM_FORCED_RESETS = Counter(
    "llm_forced_resets_total",
    "Entries force-cleared because the whole pool was cooling down",
    ["provider"],
)

# ── Conversation metrics ─────────────────────────────────────
REPLIES_TOTAL = Counter(
    "chat_replies_total",
    "Replies produced for inbound messages",
    ["source", "result"],  # webhook / dashboard, generated / fallback
)
