"""
Box Office API - Main Application Entry Point

Seat-inventory core for ticketed events:
- All-or-nothing seat holds with a TTL and a per-user limit
- Booking lifecycle (pending -> confirmed | cancelled | expired) with optimistic locking
- Background expiry reaper returning lapsed holds to sale
- Redis-cached seat maps, structured logging, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import BookingSystemError, InternalError
from boxoffice.core.logging import setup_logging, get_logger
from boxoffice.core.metrics import metrics_endpoint
from boxoffice.api.router import api_router
from boxoffice.api.middleware import RequestLoggingMiddleware
from boxoffice.db.session import AsyncSessionLocal, get_db
from boxoffice.services.cache_service import get_redis, close_redis, get_cache_stats
from boxoffice.services.expiry_reaper import ExpiryReaper

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    reaper = None
    if settings.REAPER_ENABLED:
        reaper = ExpiryReaper(AsyncSessionLocal)
        reaper.start()
    app.state.reaper = reaper

    yield

    if reaper:
        await reaper.stop()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Seat holds and bookings with race-free inventory accounting",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(BookingSystemError)
async def booking_system_error_handler(request: Request, exc: BookingSystemError):
    if isinstance(exc, InternalError):
        # Full message stays in the logs; clients get the generic body
        logger.error("internal_error", error=exc.message, error_type=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus dependency status. Redis being down is degraded, not unhealthy."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error("health_database_error", error=str(e))
        database = "error"

    cache_stats = await get_cache_stats()
    return JSONResponse(
        status_code=200 if database == "ok" else 503,
        content={
            "status": "healthy" if database == "ok" else "unhealthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": database,
            "cache": cache_stats,
            "reaper": "running" if getattr(app.state, "reaper", None) else "disabled",
        },
    )


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
