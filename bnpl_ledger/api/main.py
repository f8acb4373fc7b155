"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from bnpl_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from bnpl_ledger.api.v1 import payments, policies, products, purchases, reports, wallet
from bnpl_ledger.domain.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainException,
    IntegrityFault,
    NotFoundError,
    ValidationError,
)
from bnpl_ledger.infrastructure.observability.logging import setup_logging
from bnpl_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)

STATUS_BY_ERROR = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    AuthorizationError: 403,
    IntegrityFault: 500,
}


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Map the domain error taxonomy to HTTP responses"""
    status_code = STATUS_BY_ERROR.get(type(exc), 400)
    request_id = getattr(request.state, "request_id", "unknown")

    if isinstance(exc, IntegrityFault):
        logging.error(f"Integrity fault: {exc}", extra={"request_id": request_id})
        return JSONResponse(status_code=status_code, content={"detail": "Internal integrity error"})

    logging.warning(
        f"{type(exc).__name__}: {exc}",
        extra={"request_id": request_id, "path": request.url.path},
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="BNPL Ledger",
        description="Purchase financing, payment confirmation and wallet ledger service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(policies.router, prefix="/v1", tags=["policies"])
    app.include_router(products.router, prefix="/v1", tags=["products"])
    app.include_router(purchases.router, prefix="/v1", tags=["purchases"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(wallet.router, prefix="/v1", tags=["wallet"])
    app.include_router(reports.router, prefix="/v1", tags=["reports"])

    return app


app = create_app()
