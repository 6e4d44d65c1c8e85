"""FastAPI application factory

Serve with: uvicorn mortgage_gateway.api.main:create_app --factory
"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from mortgage_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from mortgage_gateway.api.v1 import loans, registry
from mortgage_gateway.infrastructure.database.models import Base
from mortgage_gateway.infrastructure.database.session import engine
from mortgage_gateway.infrastructure.observability.logging import setup_logging
from mortgage_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app(create_tables: bool = True) -> FastAPI:
    """Create and configure FastAPI application"""
    if create_tables:
        Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title="Mortgage Escrow Gateway",
        description="Credit sales of escrowed assets: origination, repayment, extension and default",
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
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(registry.router, prefix="/v1", tags=["registry"])

    return app
