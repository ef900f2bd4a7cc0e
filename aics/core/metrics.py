"""
Prometheus metrics collection module.

Metrics Categories:
- RED Metrics: HTTP rate, errors, duration
- LLM Metrics: gateway latency, errors, tokens, estimated cost, schema failures
- Pipeline Metrics: agent runs, classification categories, fallbacks, QA revisions
- Action Metrics: side-effect outcomes per action type
- Resource Metrics: CPU, memory

All metrics follow Prometheus naming conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for duration
- Gauges: No special suffix
"""
from typing import Optional

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from aics.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# RED METRICS - Rate, Errors, Duration
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=registry,
)

# ============================================================================
# LLM GATEWAY METRICS
# ============================================================================

llm_requests_total = Counter(
    "llm_requests_total",
    "Total number of LLM gateway requests",
    ["agent", "model"],
    registry=registry,
)

llm_request_duration_seconds = Histogram(
    "llm_request_duration_seconds",
    "LLM gateway request latency in seconds",
    ["agent", "model"],
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0],
    registry=registry,
)

llm_errors_total = Counter(
    "llm_errors_total",
    "Total number of failed LLM gateway requests",
    ["agent", "error_type"],  # timeout, http_error, circuit_open, ...
    registry=registry,
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total number of LLM tokens",
    ["agent", "model", "direction"],  # direction: input | output
    registry=registry,
)

llm_cost_usd_total = Counter(
    "llm_cost_usd_total",
    "Estimated LLM spend in USD",
    ["agent", "model"],
    registry=registry,
)

llm_schema_validation_failures_total = Counter(
    "llm_schema_validation_failures_total",
    "Model responses that could not be decoded into the expected schema",
    ["agent"],
    registry=registry,
)

# ============================================================================
# PIPELINE METRICS
# ============================================================================

agent_runs_total = Counter(
    "agent_runs_total",
    "Agent invocations by outcome",
    ["agent_id", "outcome"],  # outcome: success | error | timeout
    registry=registry,
)

agent_run_duration_seconds = Histogram(
    "agent_run_duration_seconds",
    "Agent run latency in seconds",
    ["agent_id"],
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 45.0],
    registry=registry,
)

classification_total = Counter(
    "classification_total",
    "Classifier decisions by category",
    ["category"],
    registry=registry,
)

escalation_overrides_total = Counter(
    "escalation_overrides_total",
    "Ticketing agent force-added because of severe sentiment",
    registry=registry,
)

fallback_responses_total = Counter(
    "fallback_responses_total",
    "Runs where every specialist failed and the apology message was returned",
    registry=registry,
)

qa_revisions_total = Counter(
    "qa_revisions_total",
    "QA review outcomes",
    ["outcome"],  # approved | revised | rejected_without_revision | invalid | error
    registry=registry,
)

orchestration_duration_seconds = Histogram(
    "orchestration_duration_seconds",
    "End-to-end orchestration latency in seconds",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 45.0, 90.0],
    registry=registry,
)

# ============================================================================
# ACTION METRICS
# ============================================================================

action_results_total = Counter(
    "action_results_total",
    "Side-effect actions by type and outcome",
    ["action_type", "outcome"],  # outcome: success | noop | error
    registry=registry,
)

# ============================================================================
# RESOURCE METRICS
# ============================================================================

system_cpu_usage_percent = Gauge(
    "system_cpu_usage_percent",
    "System CPU usage percentage",
    registry=registry,
)

system_memory_usage_bytes = Gauge(
    "system_memory_usage_bytes",
    "System memory usage in bytes",
    registry=registry,
)

ai_pipeline_available = Gauge(
    "ai_pipeline_available",
    "Whether the AI CS pipeline can serve chat (1 = enabled and LLM configured, 0 = unavailable)",
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def normalize_endpoint(path: str) -> str:
    """
    Normalize endpoint path for metrics.

    Strips query strings and collapses conversation ids to keep cardinality low.

    Examples:
        /chat?x=1 -> /chat
        /conversations/abc123 -> /conversations/{conversation_id}
    """
    if "?" in path:
        path = path.split("?")[0]

    if path.startswith("/conversations/"):
        return "/conversations/{conversation_id}"

    return path


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record HTTP request metrics (RED metrics)."""
    normalized_endpoint = normalize_endpoint(endpoint)

    http_requests_total.labels(
        method=method,
        endpoint=normalized_endpoint,
        status=str(status_code),
    ).inc()

    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=str(status_code),
        ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=normalized_endpoint,
    ).observe(duration_seconds)


def record_llm_request(agent: str, model: str, duration_ms: float) -> None:
    """Record one gateway round-trip, successful or not."""
    llm_requests_total.labels(agent=agent, model=model).inc()
    llm_request_duration_seconds.labels(agent=agent, model=model).observe(
        duration_ms / 1000.0
    )


def record_llm_error(agent: str, error_type: str) -> None:
    llm_errors_total.labels(agent=agent, error_type=error_type).inc()


def record_llm_tokens_and_cost(
    agent: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
    cost_usd: float,
) -> None:
    """Record token usage and estimated cost for one gateway call."""
    if input_tokens:
        llm_tokens_total.labels(agent=agent, model=model, direction="input").inc(input_tokens)
    if output_tokens:
        llm_tokens_total.labels(agent=agent, model=model, direction="output").inc(output_tokens)
    if cost_usd > 0:
        llm_cost_usd_total.labels(agent=agent, model=model).inc(cost_usd)


def record_llm_schema_validation_failure(agent: str) -> None:
    llm_schema_validation_failures_total.labels(agent=agent).inc()


def record_agent_run(agent_id: str, outcome: str, duration_ms: Optional[float] = None) -> None:
    """
    Record an agent invocation.

    Args:
        agent_id: Agent identifier (e.g. "team-3")
        outcome: success | error | timeout
        duration_ms: Wall-clock duration when known
    """
    agent_runs_total.labels(agent_id=agent_id, outcome=outcome).inc()
    if duration_ms is not None:
        agent_run_duration_seconds.labels(agent_id=agent_id).observe(duration_ms / 1000.0)


def record_classification(category: str) -> None:
    classification_total.labels(category=category).inc()


def record_escalation_override() -> None:
    escalation_overrides_total.inc()


def record_fallback_response() -> None:
    fallback_responses_total.inc()


def record_qa_outcome(outcome: str) -> None:
    qa_revisions_total.labels(outcome=outcome).inc()


def record_orchestration_duration(duration_seconds: float) -> None:
    orchestration_duration_seconds.observe(duration_seconds)


def record_action_result(action_type: str, outcome: str) -> None:
    action_results_total.labels(action_type=action_type, outcome=outcome).inc()


def update_resource_metrics() -> None:
    """Refresh CPU and memory gauges (called on scrape)."""
    try:
        system_cpu_usage_percent.set(psutil.cpu_percent(interval=None))
        system_memory_usage_bytes.set(psutil.virtual_memory().used)
    except Exception as e:
        logger.warning(
            "metrics_resource_update_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def set_ai_pipeline_available(available: bool) -> None:
    ai_pipeline_available.set(1 if available else 0)


def get_metrics() -> bytes:
    """Prometheus metrics in text exposition format."""
    update_resource_metrics()
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
