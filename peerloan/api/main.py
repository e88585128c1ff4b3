"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from peerloan.api.dependencies import get_request_id
from peerloan.api.middleware import RequestIDMiddleware, MetricsMiddleware
from peerloan.api.v1 import loan_requests, loans, offers
from peerloan.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DomainException,
    NotFoundError,
    ValidationError,
)
from peerloan.infrastructure.observability.logging import setup_logging
from peerloan.config import settings

# Setup structured logging
setup_logging(settings.log_level)

ERROR_STATUS = {
    AuthenticationError: 401,
    AuthorizationError: 403,
    NotFoundError: 404,
    ValidationError: 422,
    ConflictError: 409,
}


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Translate service-layer failures into HTTP errors"""
    status_code = ERROR_STATUS.get(type(exc), 400)
    logging.warning(
        f"{type(exc).__name__}: {exc}",
        extra={"request_id": get_request_id(request), "path": request.url.path, "status": status_code},
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="PeerLoan Engine",
        description="Peer-to-peer loan request, matching, disbursement and repayment service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    for exception_class in ERROR_STATUS:
        app.add_exception_handler(exception_class, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(loan_requests.router, prefix="/v1", tags=["loan-requests"])
    app.include_router(offers.router, prefix="/v1", tags=["offers"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])

    return app


app = create_app()
