"""
Unit Tests for Metrics Collection

Counters live in the process-wide Prometheus registry, so assertions
compare deltas rather than absolute values.
"""

import pytest
from prometheus_client import REGISTRY

from bridge_aggregator.infrastructure.monitoring.metrics_collector import MetricsCollector, get_metrics_collector


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.unit
class TestMetricsCollector:
    """Test suite for MetricsCollector."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector()

    def test_singleton(self):
        assert get_metrics_collector() is get_metrics_collector()

    def test_quote_request_outcomes(self, metrics):
        before = _sample("bridge_quote_requests_total", outcome="success")
        metrics.record_quote_request("success")
        assert _sample("bridge_quote_requests_total", outcome="success") == before + 1

    def test_provider_outcome_with_latency(self, metrics):
        before = _sample("bridge_provider_latency_seconds_count", provider="Metric Bridge")
        metrics.record_provider_outcome("Metric Bridge", "success", 0.25)
        metrics.record_provider_outcome("Metric Bridge", "timeout")

        assert _sample("bridge_provider_requests_total", provider="Metric Bridge", status="timeout") >= 1
        assert _sample("bridge_provider_latency_seconds_count", provider="Metric Bridge") == before + 1

    def test_circuit_state_gauge(self, metrics):
        metrics.set_circuit_state("Gauge Bridge", "open")
        assert _sample("bridge_circuit_breaker_state", provider="Gauge Bridge") == 2
        metrics.set_circuit_state("Gauge Bridge", "half_open")
        assert _sample("bridge_circuit_breaker_state", provider="Gauge Bridge") == 1
        metrics.set_circuit_state("Gauge Bridge", "closed")
        assert _sample("bridge_circuit_breaker_state", provider="Gauge Bridge") == 0

    def test_cache_and_error_counters(self, metrics):
        hits = _sample("bridge_cache_hits_total", tier="l1", namespace="quotes")
        errors = _sample("bridge_errors_total", error_type="CacheConnectionError", component="cache")

        metrics.record_cache_hit("l1")
        metrics.record_error("CacheConnectionError", "cache")

        assert _sample("bridge_cache_hits_total", tier="l1", namespace="quotes") == hits + 1
        assert _sample("bridge_errors_total", error_type="CacheConnectionError", component="cache") == errors + 1

    def test_prometheus_export(self, metrics):
        metrics.record_market_refresh("live")
        output = metrics.get_prometheus_metrics()

        assert b"bridge_market_data_refresh_total" in output
        assert metrics.get_content_type().startswith("text/plain")
