import logging
import traceback
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from claimguard.config import settings
from claimguard.middleware.logging_config import configure_logging
from claimguard.models import ReferenceDataError
from claimguard.seed.reference_data import get_reference_database

configure_logging(settings.log_level, settings.log_format)

from claimguard.api.analyze import router as analyze_router  # noqa: E402
from claimguard.api.reference import router as reference_router  # noqa: E402
from claimguard.api.metrics import router as metrics_router  # noqa: E402

logger = logging.getLogger("claimguard")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: load reference data once; a broken file stops the service
    db = get_reference_database()
    logger.info(
        "ClaimGuard ready: %d codes, %d bundles, narrative=%s",
        len(db.codes), len(db.bundles), settings.narrative_provider,
    )
    yield


app = FastAPI(
    title="ClaimGuard Claims Audit",
    description="Severity, timeline and ghost/unbundling audit of medical claim batches",
    version=VERSION,
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Request-ID"],
)

# ── Request context middleware (request ID + timing) ─────────────────────────
from claimguard.middleware.request_context import RequestContextMiddleware  # noqa: E402

app.add_middleware(RequestContextMiddleware)

# ── Prometheus metrics middleware ────────────────────────────────────────────
from claimguard.middleware.metrics import PrometheusMiddleware  # noqa: E402

app.add_middleware(PrometheusMiddleware)


@app.exception_handler(ReferenceDataError)
async def reference_data_exception_handler(request: Request, exc: ReferenceDataError):
    logger.error("Reference data error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": f"Reference data unavailable: {exc}"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return detailed error info in development mode so 500s are debuggable."""
    tb = traceback.format_exc()
    logger.error(
        "Unhandled %s on %s %s: %s\n%s",
        type(exc).__name__, request.method, request.url.path, exc, tb,
    )
    detail = f"{type(exc).__name__}: {exc}"
    if settings.environment == "development":
        return JSONResponse(
            status_code=500,
            content={"detail": detail, "traceback": tb.splitlines()[-5:]},
        )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Register API routers
app.include_router(analyze_router)
app.include_router(reference_router)
app.include_router(metrics_router)


# ── Health check ─────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health_check():
    try:
        db = get_reference_database()
    except ReferenceDataError as exc:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "environment": settings.environment, "error": str(exc)},
        )
    return {
        "status": "healthy",
        "version": VERSION,
        "environment": settings.environment,
        "reference": {"codes": len(db.codes), "bundles": len(db.bundles)},
        "narrative_provider": settings.narrative_provider,
    }


def run() -> None:
    """Console entry point: serve the app with uvicorn using configured host/port."""
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
