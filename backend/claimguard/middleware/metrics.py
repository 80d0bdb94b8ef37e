"""
Prometheus metrics middleware.

Collects HTTP request metrics (counter + histogram) and exposes
application-level counters for claim analyses and narrative generation.
"""

import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Analysis metrics ─────────────────────────────────────────────────────────

analyses_total = Counter(
    "claimguard_analyses_total",
    "Total claim batch analyses",
    ["risk_level"],
)

analysis_duration_seconds = Histogram(
    "claimguard_analysis_duration_seconds",
    "Claim batch analysis duration in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0, 30.0),
)

claims_analyzed_total = Counter(
    "claimguard_claims_analyzed_total",
    "Total claim line items analyzed",
)

# ── Narrative metrics ────────────────────────────────────────────────────────

narrative_requests_total = Counter(
    "claimguard_narrative_requests_total",
    "Narratives produced, by source",
    ["source"],
)


def _normalize_path(path: str) -> str:
    """Collapse path parameters to reduce cardinality.

    e.g. /api/reference/codes/99285 → /api/reference/codes/{id}
    """
    parts = path.strip("/").split("/")
    normalized = []
    for i, part in enumerate(parts):
        if i > 2 or (i > 1 and (part.isdigit() or len(part) > 20)):
            normalized.append("{id}")
        else:
            normalized.append(part)
    return "/" + "/".join(normalized)


def _route_label(request: Request) -> str:
    # Matched route template when the router resolved one, else the collapsed path
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or _normalize_path(request.url.path)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        path = _route_label(request)
        http_requests_total.labels(request.method, path, str(response.status_code)).inc()
        http_request_duration_seconds.labels(request.method, path).observe(elapsed)
        return response
