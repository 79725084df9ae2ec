"""
LawnOps - SMS intake and crew dispatch for lawn care businesses.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from lawnops.config import get_settings
from lawnops.api.router import api_router
from lawnops.errors import LawnOpsError, StateConflictError
from lawnops.utils.locks import LockTimeoutError
from lawnops.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("lawnops")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("LawnOps starting up (env=%s)", settings.app_env)

    if not settings.dashboard_jwt_secret:
        logger.warning(
            "DASHBOARD_JWT_SECRET not set - falling back to APP_SECRET_KEY. "
            "Set a dedicated JWT secret for production."
        )

    worker_tasks: list[asyncio.Task] = []

    if settings.jobber_api_key:
        from lawnops.workers.writeback_sync import run_writeback_sync
        worker_tasks.append(asyncio.create_task(run_writeback_sync()))
        logger.info("Write-back worker started")
    else:
        logger.info("JOBBER_API_KEY not set - write-back worker disabled")

    yield

    logger.info("LawnOps shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        await asyncio.gather(*worker_tasks, return_exceptions=True)
    logger.info("LawnOps shutdown complete")


async def lawnops_error_handler(request: Request, exc: LawnOpsError) -> JSONResponse:
    """Map core errors to their HTTP status."""
    body = {"error": exc.message, "code": exc.code}
    if isinstance(exc, StateConflictError) and exc.current_status:
        body["current_status"] = exc.current_status
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


async def lock_timeout_handler(request: Request, exc: LockTimeoutError) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": str(exc), "code": "lock_timeout"},
        headers={"Retry-After": "5"},
    )


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="LawnOps",
        description="SMS intake and crew dispatch for lawn care businesses",
        version="1.0.0",
        lifespan=lifespan,
    )

    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["http://localhost:3000", "http://localhost:5173", settings.app_base_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.add_exception_handler(LawnOpsError, lawnops_error_handler)
    application.add_exception_handler(LockTimeoutError, lock_timeout_handler)

    application.include_router(api_router)

    return application


app = create_app()
