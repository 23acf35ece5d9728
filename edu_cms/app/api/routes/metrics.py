"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes the article store metrics:
    - article_operations_total{operation, outcome}
    - article_operation_latency_ms{operation}
    - article_cache_lookups_total{kind, outcome}
    - article_lock_wait_ms
    - sync_jobs_total{job_type, outcome}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
