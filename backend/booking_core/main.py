"""
Reservation Core API - Main Application Entry Point

Seat and parking-slot reservations that stay correct under concurrent demand:
- All-or-nothing holds through conditional ledger commits
- Expiring holds released by a background sweeper and lazily on read
- Redis caching of the immutable catalog
- Structured logging with request correlation
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_core.core.config import get_settings
from booking_core.core.logging import setup_logging, get_logger
from booking_core.core.metrics import metrics_endpoint
from booking_core.api.errors import register_exception_handlers
from booking_core.api.router import api_router
from booking_core.api.middleware import RequestLoggingMiddleware
from booking_core.db.session import get_session_factory
from booking_core.services.cache_service import get_redis, close_redis, get_cache_stats
from booking_core.services.publisher_factory import get_publisher
from booking_core.services.release_service import run_expiry_sweeper

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    # Initialize Redis connection
    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    sweeper = None
    if settings.EXPIRY_SWEEP_ENABLED:
        sweeper = asyncio.create_task(
            run_expiry_sweeper(get_session_factory(), settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
        )

    yield

    # Cleanup
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await get_publisher().close()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Race-free seat and parking-slot reservations",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
