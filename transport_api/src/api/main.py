from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.core.logging import configure_logging, correlation_id_var, principal_var, tenant_id_var
from src.core.settings import get_app_settings
from src.db.run_migrations import main as run_alembic
from src.db.seed import seed_all
from src.db.session import dispose_engine, get_engine, get_session_maker
from src.schemas.common import ErrorInfo, ErrorResponse, HealthResponse
from src.tenancy.errors import LeakageError, TenancyError
from src.tenancy.router import StorageRouter

# Routers
from src.api.routes.auth import router as auth_router
from src.api.routes.balances import router as balances_router
from src.api.routes.companies import router as companies_router
from src.api.routes.drivers import router as drivers_router
from src.api.routes.orders import router as orders_router
from src.api.routes.payments import router as payments_router
from src.api.routes.processing import router as processing_router
from src.api.routes.tenants import router as tenants_router

# Configure structured logging once at import
configure_logging()
logger = logging.getLogger(__name__)

settings = get_app_settings()

openapi_tags = [
    {"name": "Health", "description": "Liveness probe."},
    {"name": "Auth", "description": "Session cookie login and current user."},
    {"name": "Companies", "description": "Transport companies of the caller's tenant."},
    {"name": "Drivers", "description": "Drivers and their company mapping."},
    {"name": "Weekly Processing", "description": "Processed weeks and VRID trip history."},
    {"name": "Payments", "description": "Payments and their audit history."},
    {"name": "Company Balances", "description": "Invoiced vs paid totals per company and week."},
    {"name": "Transport Orders", "description": "Transport orders and order numbering."},
    {"name": "Tenants", "description": "Tenant registration and storage provisioning (superadmin)."},
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Enrich request context with a correlation_id for logging and error responses.
    Adds 'X-Correlation-ID' to every response.

    Tenant and principal are filled in by the isolation dependencies once the
    session cookie has been resolved; no request header can select a tenant.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    token_corr = correlation_id_var.set(corr)
    token_tenant = tenant_id_var.set(None)
    token_principal = principal_var.set(None)
    request.state.correlation_id = corr

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token_corr)
        tenant_id_var.reset(token_tenant)
        principal_var.reset(token_principal)

    response.headers["X-Correlation-ID"] = corr
    return response


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
    tenant_id: str | None = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    ts = datetime.now(tz=timezone.utc)
    corr = getattr(request.state, "correlation_id", None)
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=corr,
        tenant_id=tenant_id or tenant_id_var.get(),
        path=request.url.path,
        method=request.method,
        timestamp=ts,
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


@app.exception_handler(TenancyError)
async def tenancy_exception_handler(request: Request, exc: TenancyError):
    """
    Render isolation-layer errors with their mapped HTTP status.

    Leakage details stay in the security log; the client only learns that the
    request was blocked.
    """
    if isinstance(exc, LeakageError):
        message = "Request blocked by tenant isolation check"
    else:
        message = exc.message
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_type, request.method, request.url.path, exc)
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type=exc.error_type,
        message=message,
        tenant_id=exc.tenant_id,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global handler for HTTPException to produce a standardized error envelope.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Global handler for request validation errors with a standard structure.
    """
    return _build_error_response(
        request=request,
        status_code=422,
        error_type="validation_error",
        message="Request validation failed",
        details=exc.errors(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler to avoid leaking stack traces and to return a structured error.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations, build the storage router and optionally seed.

    Migrations run in a worker thread because the Alembic environment drives
    its own event loop.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)
            # Do not crash the app in case of transient DB issues; rely on retries or later readiness probes.

    app.state.storage_router = StorageRouter(get_engine(), get_session_maker(), settings=settings)

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all(app.state.storage_router)
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)
            # Safe to continue without seed; environments may not require it.


@app.on_event("shutdown")
async def on_shutdown() -> None:
    """Close tenant engines and the shared engine."""
    router = getattr(app.state, "storage_router", None)
    if router is not None:
        await router.close()
    await dispose_engine()


# Build API v1 router and include sub-routers
api_v1 = APIRouter(prefix="/api/v1")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> HealthResponse:
    """
    Basic liveness health check endpoint.

    Returns:
        HealthResponse: Simple confirmation that the service is running.
    """
    return HealthResponse(status="ok", version=settings.APP_VERSION)


# Include all routers under /api/v1
api_v1.include_router(auth_router)
api_v1.include_router(companies_router)
api_v1.include_router(drivers_router)
api_v1.include_router(processing_router)
api_v1.include_router(payments_router)
api_v1.include_router(balances_router)
api_v1.include_router(orders_router)
api_v1.include_router(tenants_router)

# Attach api_v1 to app
app.include_router(api_v1)
