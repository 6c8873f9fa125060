"""Prometheus metrics definitions for the escalation service.

This module provides centralized metric definitions for observability.
Metrics are exported via the /metrics endpoint for Prometheus scraping.
"""

from prometheus_client import Counter, Gauge, Histogram  # type: ignore[import-not-found]

# Request metrics
HTTP_REQUESTS = Counter(
    "escalation_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
HTTP_LATENCY = Histogram(
    "escalation_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)

# Detection metrics
KEYWORD_MATCHES = Counter(
    "escalation_keyword_matches_total",
    "Urgent keyword matches",
    ["priority_level"],
)
URGENCY_ASSESSMENTS = Counter(
    "escalation_urgency_assessments_total",
    "LLM urgency assessments",
    ["result"],
)

# Case metrics
CASES_OPENED = Counter(
    "escalation_cases_opened_total",
    "Escalation cases opened",
    ["priority_level"],
)
CASE_TRANSITIONS = Counter(
    "escalation_case_transitions_total",
    "Escalation case transitions",
    ["transition"],
)
PENDING_CASES = Gauge(
    "escalation_cases_pending",
    "Escalation cases awaiting acknowledgment",
)
TICK_LATENCY = Histogram(
    "escalation_tick_duration_seconds",
    "Scheduler tick latency",
)

# Delivery metrics
DELIVERY_ATTEMPTS = Counter(
    "escalation_delivery_attempts_total",
    "Channel delivery attempts",
    ["channel", "status"],
)
WEBHOOK_ATTEMPTS = Counter(
    "escalation_webhook_attempts_total",
    "Webhook delivery attempts",
    ["event_type", "outcome"],
)
