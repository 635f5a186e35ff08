"""
Event Ticketing API entry point.

Users book tickets for approved events; organizers publish events that
admins approve or decline; admins also manage accounts. Ticket inventory
is only moved by the booking service (see app.services.booking_service).
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.middleware import RequestLoggingMiddleware
from app.api.router import api_router
from app.core.config import get_settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.core.metrics import metrics_endpoint
from app.db.session import check_database, engine
from app.infrastructure.redis_client import get_redis, close_redis
from app.services.cache_service import get_cache_stats

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "ticketing_api_starting",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        max_tickets_per_booking=settings.MAX_TICKETS_PER_BOOKING,
        booking_max_attempts=settings.BOOKING_MAX_ATTEMPTS,
    )

    if not await check_database():
        # Requests will fail with 503 until the database comes back
        logger.error("database_unreachable_at_startup")

    if await get_redis() is None:
        logger.warning("event_cache_disabled", redis_enabled=settings.REDIS_ENABLED)

    yield

    await close_redis()
    await engine.dispose()
    logger.info("ticketing_api_stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Ticketing API with role-based event management and concurrency-safe bookings",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness/readiness probe. The database is required; the Redis cache is
    optional, so a missing cache is reported but still healthy.
    """
    database_ok = await check_database()
    body = {
        "status": "healthy" if database_ok else "unhealthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": "ok" if database_ok else "unavailable",
        "cache": await get_cache_stats(),
    }
    return JSONResponse(
        content=body,
        status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {"service": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/docs"}
