"""
FastAPI application entry point.

Configures middleware, lifespan events, error mapping, and mounts all routers.
Run locally: uvicorn newsroom.main:app --reload
Production:  gunicorn newsroom.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from newsroom.api.v1.routes import health, rundowns, shows
from newsroom.core.config import get_settings
from newsroom.core.errors import NewsroomError, StorageUnavailableError
from newsroom.core.logging import get_logger, setup_logging
from newsroom.core.security import limiter
from newsroom.models.database import create_tables, engine

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown events."""
    setup_logging()
    logger.info(
        "app_starting",
        environment=settings.app_env,
        database=settings.database_url[:30] + "...",
    )

    if settings.create_tables_on_startup:
        await create_tables(engine)

    yield

    await engine.dispose()
    logger.info("app_shutting_down")


app = FastAPI(
    title="Newsroom Rundown Service",
    description="Show scheduling and broadcast rundown sequencing for the newsroom",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.app_env != "production" else None,
    redoc_url="/redoc" if settings.app_env != "production" else None,
)

# ── Middleware ──────────────────────────────────────────────
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Rate limiting ──────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ── Error mapping ──────────────────────────────────────────
@app.exception_handler(NewsroomError)
async def newsroom_error_handler(request: Request, exc: NewsroomError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        method=request.method,
        path=request.url.path,
        code=exc.code,
        detail=exc.message,
    )
    headers = {"Retry-After": "1"} if isinstance(exc, StorageUnavailableError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


# ── Routes ─────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(shows.router, prefix="/api/v1")
app.include_router(rundowns.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "service": "Newsroom Rundown Service",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/healthz/",
    }
