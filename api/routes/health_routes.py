"""Health check endpoints."""

from fastapi import APIRouter, HTTPException, Request
from starlette import status

from core.database import check_db_connection, get_pool_status
from core.logger import get_logger
from core.ratelimit import limiter
from schemas import DetailedHealthResponse, HealthResponse, PoolStatusResponse

router = APIRouter(tags=["health"])
logger = get_logger(__name__)

SERVICE_NAME = "habit-streaks-api"


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness: the process is up."""
    return HealthResponse(status="healthy", service=SERVICE_NAME)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
@limiter.limit("30/minute")
async def health_detailed(request: Request) -> DetailedHealthResponse:
    """Database reachability and pool metrics. Always 200."""
    engine = request.app.state.engine
    try:
        await check_db_connection(engine)
        database_ok = True
    except Exception as e:
        logger.warning("health.database.unreachable", error=str(e))
        database_ok = False

    pool = get_pool_status(engine)
    return DetailedHealthResponse(
        status="healthy" if database_ok else "unhealthy",
        service=SERVICE_NAME,
        database=database_ok,
        pool=PoolStatusResponse(**pool._asdict()) if pool else None,
    )


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"description": "Init failed or database unreachable"}},
)
@limiter.limit("30/minute")
async def ready(request: Request) -> HealthResponse:
    """Readiness: startup finished and the database answers."""
    init_error = getattr(request.app.state, "init_error", None)
    if init_error:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Initialization failed: {init_error}",
        )

    if not getattr(request.app.state, "init_done", False):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Starting",
        )

    try:
        await check_db_connection(request.app.state.engine)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from e

    return HealthResponse(status="ready", service=SERVICE_NAME)
