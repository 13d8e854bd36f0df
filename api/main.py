"""FastAPI application for the habit streaks API."""

import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware

from core.config import Settings, get_settings
from core.database import (
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
)
from core.logger import configure_logging, get_logger
from core.middleware import SecurityHeadersMiddleware, UserTrackingMiddleware
from core.observability import configure_observability
from core.ratelimit import limiter, rate_limit_exceeded_handler
from core.telemetry import RequestTimingMiddleware
from repositories import StorageError
from routes import cron_router, habits_router, health_router

# Providers first so configure_logging keeps the OTel log handler
configure_observability()
configure_logging()
logger = get_logger(__name__)

API_DIR = Path(__file__).parent
SESSION_MAX_AGE = 60 * 60 * 24 * 30
STORAGE_RETRY_AFTER_SECONDS = 5


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled.exception",
        exc_type=type(exc).__name__,
        method=request.method,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


async def handle_storage_error(request: Request, exc: Exception) -> JSONResponse:
    """A failed read or write against the database maps to a retryable 503."""
    logger.error(
        "storage.unavailable",
        operation=getattr(exc, "operation", None),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage temporarily unavailable. Please retry."},
        headers={"Retry-After": str(STORAGE_RETRY_AFTER_SECONDS)},
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # ctx may hold exception instances that JSON can't encode
    errors = [
        {key: value for key, value in err.items() if key != "ctx"}
        for err in exc.errors()
    ]
    logger.warning(
        "request.validation_error",
        method=request.method,
        path=request.url.path,
        error_count=len(errors),
    )
    return JSONResponse(status_code=422, content={"detail": errors})


async def _upgrade_schema() -> None:
    """Apply pending migrations via ``python -m cli migrate`` in a child process.

    Alembic's psycopg2 engine can deadlock when run on a thread of a uvloop
    event loop.
    """
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "cli",
        "migrate",
        cwd=API_DIR,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip()
        logger.error("migrations.failed", stderr=message)
        raise RuntimeError(f"Schema migration failed:\n{message}")
    logger.info("migrations.complete")


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    settings = get_settings()
    engine = create_engine()
    app.state.engine = engine
    app.state.session_maker = create_session_maker(engine)
    app.state.init_done = False
    app.state.init_error = None

    try:
        async with asyncio.timeout(60):
            await init_db(engine)
        if settings.run_migrations_on_startup and settings.is_postgres:
            async with asyncio.timeout(120):
                await _upgrade_schema()
    except TimeoutError:
        logger.error("init.timeout", hint="check database connectivity")
        raise RuntimeError("Application startup timed out")
    except Exception as e:
        app.state.init_error = str(e)
        logger.exception("init.failed", error=str(e))
        raise

    app.state.init_done = True
    logger.info("init.complete", migrations=settings.run_migrations_on_startup)
    try:
        yield
    finally:
        await dispose_engine(engine)


def _install_middleware(app: fastapi.FastAPI, settings: Settings) -> None:
    # Starlette runs the last-added middleware first
    app.add_middleware(UserTrackingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        session_cookie="session",
        max_age=SESSION_MAX_AGE,
        same_site="lax",
        https_only=settings.require_https,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestTimingMiddleware)


def create_app() -> fastapi.FastAPI:
    settings = get_settings()
    docs = settings.enable_docs or settings.debug

    app = fastapi.FastAPI(
        title="Habit Streaks API",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StorageError, handle_storage_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    _install_middleware(app, settings)

    for router in (health_router, habits_router, cron_router):
        app.include_router(router)
    return app


app = create_app()
