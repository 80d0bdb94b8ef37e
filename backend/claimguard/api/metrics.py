"""
Prometheus metrics endpoint.

GET /metrics returns every collector in text exposition format;
repeat ?name=<sample> to scrape only selected series, e.g.
/metrics?name=claimguard_analyses_total.
"""

from fastapi import APIRouter, Query
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def prometheus_metrics(name: list[str] | None = Query(None)):
    registry = REGISTRY.restricted_registry(name) if name else REGISTRY
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
