"""
Main Application - FastAPI application setup.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ledger.api.admin_routes import router as admin_router
from ledger.api.dependencies import SessionRegistry
from ledger.api.routes import router
from ledger.config import settings
from ledger.db.migration_runner import run_migrations
from ledger.db.session import close_engine, get_session, get_session_factory
from ledger.exceptions import AuthorizationError, NotAuthenticatedError
from ledger.models.api import HealthResponse
from ledger.observability import get_logger, metrics, setup_logging, setup_tracing
from ledger.observability.logging import log_context
from ledger.observability.tracing import instrument_fastapi
from ledger.services.gateway import SqlPersistenceGateway
from ledger.services.marketplace import Marketplace

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Builds the marketplace on startup; flushes pending gateway writes and
    closes the engine on shutdown.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )

    if settings.run_migrations_on_startup:
        await asyncio.to_thread(run_migrations)

    if getattr(app.state, "marketplace", None) is None:
        gateway = SqlPersistenceGateway(get_session_factory())
        app.state.marketplace = Marketplace.from_config(gateway, settings)
    app.state.sessions = SessionRegistry()

    yield

    logger.info("application_shutting_down")
    marketplace: Marketplace = app.state.marketplace
    await marketplace.outbox.wait_idle()
    applied = await marketplace.flush()
    logger.info(
        "outbox_flushed",
        applied=applied,
        still_pending=marketplace.outbox.pending_count,
    )
    await close_engine()
    logger.info("database_engine_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Log validation errors and return them in a JSON-safe form."""
    sanitized_errors = []
    for error in exc.errors():
        sanitized = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        if "ctx" in error:
            sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized_errors.append(sanitized)

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )
    return JSONResponse(status_code=422, content={"detail": sanitized_errors})


@app.exception_handler(NotAuthenticatedError)
async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(AuthorizationError)
async def authorization_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    logger.warning(
        "authorization_denied",
        path=request.url.path,
        role=exc.role,
        capability=exc.capability,
    )
    return JSONResponse(status_code=403, content={"detail": str(exc)})


# Setup tracing
setup_tracing()
instrument_fastapi(app)


# Request logging middleware
@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing."""
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    endpoint = request.url.path
    method = request.method

    with log_context(request_id=request_id, user_id=request.headers.get("X-User-ID")):
        logger.info("request_started", method=method, path=endpoint)
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            metrics.record_http_request(endpoint, method, 500, duration)
            metrics.record_error(type(e).__name__, "http_request")
            logger.error(
                "request_failed",
                method=method,
                path=endpoint,
                error=str(e),
                duration_seconds=duration,
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, response.status_code, duration)
        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
        )
        return response


# Register routes
app.include_router(router)  # Session user routes
app.include_router(admin_router)  # Capability-gated admin routes


async def check_database() -> bool:
    """Run a trivial query against the gateway database."""
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("database_health_check_failed", error=str(exc))
        return False
    return True


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """
    Health check.

    "degraded" when the database is unreachable; local state keeps serving
    and writes wait in the outbox.
    """
    marketplace: Marketplace | None = getattr(request.app.state, "marketplace", None)
    database_ok = await check_database()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        service=settings.service_name,
        version=settings.api_version,
        pending_writes=marketplace.outbox.pending_count if marketplace else 0,
    )


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    if not settings.metrics_enabled:
        return PlainTextResponse("", status_code=404)
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ledger.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
