"""
Unit tests for Prometheus metrics collection.

Tests verify:
- RED metrics (Rate, Errors, Duration) are recorded correctly
- LLM and pipeline metrics are incremented/observed
- Resource metrics (CPU, memory) are updated correctly
- Metrics endpoint returns valid Prometheus format
"""
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

import aics.routes.metrics as metrics_routes
from aics.core.config import Settings
from aics.core.metrics import (
    get_metrics,
    get_metrics_content_type,
    normalize_endpoint,
    record_action_result,
    record_agent_run,
    record_classification,
    record_fallback_response,
    record_http_request,
    record_llm_error,
    record_llm_schema_validation_failure,
    record_llm_tokens_and_cost,
    record_qa_outcome,
    update_resource_metrics,
)
from aics.main import app


def sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestNormalizeEndpoint:
    def test_strips_query_string(self):
        assert normalize_endpoint("/chat?debug=1") == "/chat"

    def test_collapses_conversation_ids(self):
        assert normalize_endpoint("/conversations/abc123") == "/conversations/{conversation_id}"

    def test_keeps_static_paths(self):
        assert normalize_endpoint("/health/") == "/health/"


class TestREDMetrics:
    def test_request_counted(self):
        labels = {"method": "POST", "endpoint": "/chat", "status": "200"}
        before = sample("http_requests_total", labels)

        record_http_request("POST", "/chat", 200, 0.42)

        assert sample("http_requests_total", labels) == before + 1

    def test_errors_counted_separately(self):
        labels = {"method": "POST", "endpoint": "/chat", "status_code": "404"}
        before = sample("http_errors_total", labels)

        record_http_request("POST", "/chat", 404, 0.01)
        record_http_request("POST", "/chat", 200, 0.01)

        assert sample("http_errors_total", labels) == before + 1

    def test_duration_observed(self):
        labels = {"method": "GET", "endpoint": "/metrics"}
        before = sample("http_request_duration_seconds_count", labels)

        record_http_request("GET", "/metrics", 200, 0.1)

        assert sample("http_request_duration_seconds_count", labels) == before + 1


class TestLLMMetrics:
    def test_tokens_and_cost(self):
        in_labels = {"agent": "team-3", "model": "m", "direction": "input"}
        out_labels = {"agent": "team-3", "model": "m", "direction": "output"}
        cost_labels = {"agent": "team-3", "model": "m"}
        before_in = sample("llm_tokens_total", in_labels)
        before_out = sample("llm_tokens_total", out_labels)
        before_cost = sample("llm_cost_usd_total", cost_labels)

        record_llm_tokens_and_cost("team-3", "m", 100, 50, 0.00105)

        assert sample("llm_tokens_total", in_labels) == before_in + 100
        assert sample("llm_tokens_total", out_labels) == before_out + 50
        assert abs(sample("llm_cost_usd_total", cost_labels) - before_cost - 0.00105) < 1e-9

    def test_errors_by_type(self):
        labels = {"agent": "classifier", "error_type": "timeout"}
        before = sample("llm_errors_total", labels)

        record_llm_error("classifier", "timeout")

        assert sample("llm_errors_total", labels) == before + 1

    def test_schema_failures(self):
        before = sample("llm_schema_validation_failures_total", {"agent": "team-8"})

        record_llm_schema_validation_failure("team-8")

        assert sample("llm_schema_validation_failures_total", {"agent": "team-8"}) == before + 1


class TestPipelineMetrics:
    def test_agent_run_outcomes(self):
        labels = {"agent_id": "team-4", "outcome": "timeout"}
        before = sample("agent_runs_total", labels)
        before_count = sample("agent_run_duration_seconds_count", {"agent_id": "team-4"})

        record_agent_run("team-4", "timeout")
        record_agent_run("team-4", "success", 1200)

        assert sample("agent_runs_total", labels) == before + 1
        # Only runs with a duration are observed
        assert sample("agent_run_duration_seconds_count", {"agent_id": "team-4"}) == before_count + 1

    def test_pipeline_counters(self):
        before_class = sample("classification_total", {"category": "policy"})
        before_fallback = sample("fallback_responses_total")
        before_qa = sample("qa_revisions_total", {"outcome": "revised"})
        before_action = sample("action_results_total", {"action_type": "notify", "outcome": "error"})

        record_classification("policy")
        record_fallback_response()
        record_qa_outcome("revised")
        record_action_result("notify", "error")

        assert sample("classification_total", {"category": "policy"}) == before_class + 1
        assert sample("fallback_responses_total") == before_fallback + 1
        assert sample("qa_revisions_total", {"outcome": "revised"}) == before_qa + 1
        assert sample("action_results_total", {"action_type": "notify", "outcome": "error"}) == before_action + 1


class TestResourceMetrics:
    @patch("aics.core.metrics.psutil")
    def test_update_resource_metrics(self, mock_psutil):
        mock_psutil.cpu_percent.return_value = 37.5
        mock_psutil.virtual_memory.return_value = MagicMock(used=1024)

        update_resource_metrics()

        assert sample("system_cpu_usage_percent") == 37.5
        assert sample("system_memory_usage_bytes") == 1024

    @patch("aics.core.metrics.psutil")
    def test_resource_failure_is_swallowed(self, mock_psutil):
        mock_psutil.cpu_percent.side_effect = RuntimeError("no /proc")

        # Should not raise
        update_resource_metrics()


class TestMetricsEndpoint:
    def test_exposition_format(self):
        body = get_metrics().decode("utf-8")

        assert "# HELP http_requests_total" in body
        assert "# TYPE agent_runs_total counter" in body
        assert "text/plain" in get_metrics_content_type()

    def test_endpoint_serves_metrics(self):
        client = TestClient(app)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "orchestration_duration_seconds" in response.text

    def test_scrape_reports_pipeline_availability(self, monkeypatch):
        monkeypatch.setattr(metrics_routes, "get_settings", lambda: Settings(llm_api_key=None))
        TestClient(app).get("/metrics")
        assert sample("ai_pipeline_available") == 0

        monkeypatch.setattr(metrics_routes, "get_settings", lambda: Settings(llm_api_key="key"))
        TestClient(app).get("/metrics")
        assert sample("ai_pipeline_available") == 1
