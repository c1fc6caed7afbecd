"""FastAPI application for the certificate service."""

import asyncio
import logging
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncEngine

from bootstrap import build_certificate_generator
from core.config import Settings, get_settings
from core.database import (
    create_all,
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
)
from core.http_client import close_registrations_client
from core.logger import configure_logging
from core.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from core.ratelimit import limiter, rate_limit_exceeded_handler
from core.wide_event import get_wide_event
from repositories import SqlTemplateStore
from routes import certificates_router, health_router, templates_router

configure_logging()
logger = logging.getLogger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; the body carries the request id for support."""
    request_id = get_wide_event().get("request_id")
    logger.exception(
        "unhandled.exception",
        extra={
            "exc_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred. Please try again.",
            "requestId": request_id,
        },
    )


async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handler for request validation errors."""
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(status_code=500, content={"detail": "Unexpected error"})

    logger.warning(
        "request.validation_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": len(exc.errors()),
        },
    )
    return JSONResponse(
        status_code=422,
        content={"detail": _jsonable_errors(exc)},
    )


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may carry the raw exception object, which is not JSON serializable
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


async def _run_alembic_migrations() -> None:
    """Apply migrations with the CLI's migrate command in a child process.

    psycopg2's connection pool cleanup deadlocks inside asyncio.to_thread
    when uvloop runs the event loop, so migrations never run in-process.
    """
    cmd = [sys.executable, "-m", "cli", "migrate", "head"]
    cwd = Path(__file__).parent

    result = await asyncio.to_thread(
        lambda: subprocess.run(
            cmd, cwd=cwd, capture_output=True, text=True, timeout=120
        )
    )

    if result.returncode != 0:
        stderr = result.stderr.strip()
        logger.error("migrations.failed", extra={"stderr": stderr})
        raise RuntimeError(f"Alembic migration failed:\n{stderr}")

    logger.info("migrations.complete")


async def _prepare_database(engine: AsyncEngine, settings: Settings) -> None:
    """Wait for the database, then bring its schema up to date."""
    async with asyncio.timeout(60):
        await init_db(engine)

    if settings.is_sqlite:
        await create_all(engine)
    else:
        async with asyncio.timeout(120):
            await _run_alembic_migrations()


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Prepare storage and the certificate pipeline; tear down on shutdown.

    ``init_done`` and ``init_error`` on app.state drive the /ready probe.
    """
    settings = get_settings()
    state = app.state
    state.init_done = False
    state.init_error = None
    state.engine = create_engine()
    state.session_maker = create_session_maker(state.engine)

    try:
        await _prepare_database(state.engine, settings)
        settings.export_dir_path.mkdir(parents=True, exist_ok=True)

        state.template_store = SqlTemplateStore(state.session_maker)
        state.certificate_generator = build_certificate_generator(
            state.session_maker, settings
        )
        state.init_done = True
    except TimeoutError:
        state.init_error = "startup timed out"
        logger.error(
            "init.timeout",
            extra={"hint": "check DB connectivity and migration state"},
        )
        raise RuntimeError("Application startup timed out")
    except Exception as e:
        state.init_error = str(e)
        logger.error("init.failed", extra={"error": str(e)}, exc_info=True)
        raise

    logger.info(
        "init.complete",
        extra={
            "export_dir": str(settings.export_dir_path),
            "export_format": settings.export_format,
            "bulk_max_concurrency": settings.bulk_max_concurrency,
        },
    )
    try:
        yield
    finally:
        await close_registrations_client()
        await dispose_engine(state.engine)


_settings = get_settings()
_docs_enabled = _settings.enable_docs or _settings.debug

app = fastapi.FastAPI(
    title="Certificate Service",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if _docs_enabled else None,
    redoc_url="/redoc" if _docs_enabled else None,
    openapi_url="/openapi.json" if _docs_enabled else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(SecurityHeadersMiddleware)
# Outermost, so the wide event covers every other middleware
app.add_middleware(RequestTimingMiddleware)

app.include_router(health_router)
app.include_router(templates_router)
app.include_router(certificates_router)
