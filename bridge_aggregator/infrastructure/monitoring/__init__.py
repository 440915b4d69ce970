from bridge_aggregator.infrastructure.monitoring.metrics_collector import MetricsCollector, get_metrics_collector

__all__ = ["MetricsCollector", "get_metrics_collector"]
