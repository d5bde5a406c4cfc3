"""Prometheus metrics for the chat service."""

from prometheus_client import CollectorRegistry, Counter

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

# HTTP
REQUESTS = Counter("requests_total", "Total HTTP requests by path", ["path"], registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total HTTP errors by path", ["path"], registry=CUSTOM_REGISTRY)

# Realtime gateway
INVOCATIONS = Counter(
    "hub_invocations_total", "Gateway invocations by target and outcome", ["target", "outcome"],
    registry=CUSTOM_REGISTRY
)

# Run orchestration
TURNS = Counter("turns_total", "Send-message turns started", registry=CUSTOM_REGISTRY)
DELTAS = Counter("message_deltas_total", "Message deltas pushed to clients", registry=CUSTOM_REGISTRY)
TOOL_ROUNDS = Counter("tool_rounds_total", "Tool output submissions", registry=CUSTOM_REGISTRY)
TOOL_CALLS = Counter("tool_calls_total", "Tool calls by outcome", ["outcome"], registry=CUSTOM_REGISTRY)
TITLE_FAILURES = Counter("title_failures_total", "Conversation title generation failures", registry=CUSTOM_REGISTRY)
