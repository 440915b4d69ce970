"""
Prometheus Metrics Route

GET /metrics exposes every collector in the text exposition format.
"""

from fastapi import APIRouter, Response

from bridge_aggregator.infrastructure.monitoring.metrics_collector import get_metrics_collector

router = APIRouter(tags=["Monitoring"])


@router.get("/metrics")
async def prometheus_metrics() -> Response:
    metrics = get_metrics_collector()
    return Response(content=metrics.get_prometheus_metrics(), media_type=metrics.get_content_type())
