"""
Matchbox — FastAPI Application Entry Point

- Async lifespan that owns the DB engine and the service graph
- CORS, timeout, and structured-logging middleware
- Mapping of service errors onto HTTP responses
- Health-check endpoints (liveness + deep readiness)
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from matchbox import __version__
from matchbox.config import get_settings
from matchbox.database import create_engine_from_settings, create_session_factory, get_db
from matchbox.errors import MatchboxError
from matchbox.services.conversation_store import ConversationStore
from matchbox.services.match_engine import MatchEngine
from matchbox.services.notification_hub import NotificationHub
from matchbox.services.profile_directory import ProfileDirectory

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(0),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger("matchbox")

# Streams stay open far longer than any request timeout.
STREAMING_PATH_PREFIX = "/api/v1/events"


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

def install_services(app: FastAPI, session_factory) -> None:
    """Build the service graph on ``app.state``.

    The hub is shared: the engine and the store only ever schedule
    deliveries on it, never await them.
    """
    directory = ProfileDirectory(session_factory)
    hub = NotificationHub(session_factory)

    app.state.session_factory = session_factory
    app.state.profile_directory = directory
    app.state.notification_hub = hub
    app.state.match_engine = MatchEngine(session_factory, directory, notifier=hub)
    app.state.conversation_store = ConversationStore(session_factory, directory, notifier=hub)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of long-lived resources."""
    settings = get_settings()

    # -- Startup --------------------------------------------------------- #
    logger.info(
        "startup_begin",
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
    )

    engine = create_engine_from_settings(settings)
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("database_pool_initialised")

    install_services(app, create_session_factory(engine))
    logger.info("startup_complete")

    yield

    # -- Shutdown -------------------------------------------------------- #
    logger.info("shutdown_begin")

    # Pending deliveries are flushed and open streams are ended before the
    # pool goes away.
    await app.state.notification_hub.shutdown()

    await engine.dispose()
    logger.info("database_pool_closed")

    logger.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware classes
# ---------------------------------------------------------------------------

class TimeoutMiddleware(BaseHTTPMiddleware):
    """Abort requests that exceed a configurable wall-clock timeout.

    Paths under ``exempt_prefix`` (the live event streams) are passed
    through untouched.
    """

    def __init__(
        self,
        app,
        timeout_seconds: float = 70.0,
        exempt_prefix: str = STREAMING_PATH_PREFIX,
    ) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds
        self.exempt_prefix = exempt_prefix

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path.startswith(self.exempt_prefix):
            return await call_next(request)
        try:
            return await asyncio.wait_for(
                call_next(request),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                method=request.method,
                path=request.url.path,
                timeout=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content={"detail": "Request timed out"},
            )


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

async def matchbox_error_handler(request: Request, exc: MatchboxError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "service_unavailable",
            method=request.method,
            path=request.url.path,
            detail=exc.detail,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Matchbox",
        description="Mutual-like matching, conversations and live notifications",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )

    # -- Middleware (applied in reverse order — last added runs first) ------ #

    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MatchboxError, matchbox_error_handler)

    # -- Health-check endpoints -------------------------------------------- #

    @app.get("/health", tags=["health"])
    async def health_liveness() -> dict:
        """Lightweight liveness check — always returns healthy if the process
        is running."""
        return {"status": "healthy"}

    @app.get("/health/deep", tags=["health"])
    async def health_deep(db: AsyncSession = Depends(get_db)) -> dict:
        """Deep readiness check — verifies database connectivity."""
        result: dict = {"status": "healthy", "database": "connected"}

        try:
            await db.execute(text("SELECT 1"))
        except Exception as exc:
            logger.error("health_db_failure", error=str(exc))
            result["database"] = f"error: {exc}"
            result["status"] = "degraded"

        return result

    # -- API router -------------------------------------------------------- #

    from matchbox.api.router import router as api_router

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
