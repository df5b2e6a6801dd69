"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from rent_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from rent_ledger.api.v1 import ledger, schedule
from rent_ledger.infrastructure.observability.logging import setup_logging
from rent_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Rent Ledger",
        description="Billing ledger reconciliation for rental tenancies",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(ledger.router, prefix="/v1", tags=["ledger"])
    app.include_router(schedule.router, prefix="/v1", tags=["schedule"])

    return app


app = create_app()
