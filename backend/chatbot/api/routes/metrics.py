"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - upstream_latency_ms{operation, outcome}
    - upstream_errors_total{operation, reason}
    - question_cache_total{layer, outcome}
    - documents_ingested_total{status}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
