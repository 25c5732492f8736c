"""
GDPT API - Main Application Entry Point

Initializes and configures the FastAPI application:
- Logging
- Database and Redis connections
- Post-commit event subscribers
- CORS middleware
- API routing and error handling
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gdpt.api import api_router
from gdpt.core.config import settings
from gdpt.core.database import close_db, init_db
from gdpt.core.errors import EngineError, ErrorKind
from gdpt.core.events import event_bus, log_event
from gdpt.core.redis import close_redis, init_redis

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Connects Redis (optional outside production) and the database and
    subscribes the event log on startup. Shutdown undoes each step, so the
    lifespan can run again in the same process.
    """
    logger.info(f"Starting GDPT API in {settings.python_env} mode...")

    try:
        await init_redis()
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"Redis connection failed, rate limiting falls back to memory: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        logger.info("Database connected")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        if settings.is_production:
            raise

    event_bus.subscribe(log_event)

    yield

    logger.info("Shutting down GDPT API...")
    event_bus.unsubscribe(log_event)
    await close_redis()
    await close_db()


app = FastAPI(
    title="GDPT API",
    description="Enrollment and identity lifecycle API",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(_request: Request, exc: EngineError) -> JSONResponse:
    """Engine errors that escaped a route keep their structured shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"error": exc.error_code, "message": exc.message}},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": {
                "error": ErrorKind.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to the GDPT API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}
