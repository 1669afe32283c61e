"""
FastAPI application — the API entrypoint.

Features:
- CORS restrictions
- Redis rate limiting middleware
- Prometheus metrics endpoint
- Structured JSON logging
- Health / readiness / liveness probes
- Graceful shutdown
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from sqlalchemy import text
from starlette.responses import Response

from bookshelf import __version__
from bookshelf.config import get_settings
from bookshelf.errors import register_error_handlers
from bookshelf.logging_config import setup_logging
from bookshelf.metrics import REQUEST_COUNT, REQUEST_LATENCY
from bookshelf.middleware.rate_limiter import RateLimiterMiddleware
from bookshelf.routers import auth, books, recommendations

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and graceful shutdown."""
    logger.info("bookshelf_starting", environment=settings.environment)

    # Create tables on first start (dev convenience); production runs alembic.
    if settings.environment == "development":
        from bookshelf.database import Base, engine
        from bookshelf import models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_created")

    yield

    logger.info("bookshelf_shutting_down")
    from bookshelf.services.cache import close_redis
    from bookshelf.services.llm_client import close_client

    await close_client()
    await close_redis()


app = FastAPI(
    title="Bookshelf",
    description="Personal book tracker with AI genre detection and reading recommendations",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

register_error_handlers(app)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Rate Limiting ──
app.add_middleware(RateLimiterMiddleware)


# ── Request metrics middleware ──
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()
    REQUEST_LATENCY.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


# ── Routers ──
app.include_router(auth.router)
app.include_router(books.router)
app.include_router(recommendations.router)


# ── Health / Readiness / Liveness ──
@app.get("/health", tags=["Health"])
async def health():
    return {"status": "healthy", "service": "bookshelf"}


@app.get("/ready", tags=["Health"])
async def readiness():
    """Readiness probe — checks DB and Redis connectivity."""
    checks = {}
    try:
        from bookshelf.database import engine

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:
        logger.warning("readiness_database_error", error=str(exc))
        checks["database"] = "error"

    if settings.cache_enabled:
        try:
            from bookshelf.services.cache import get_redis

            r = await get_redis()
            await r.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            logger.warning("readiness_redis_error", error=str(exc))
            checks["redis"] = "error"

    all_ok = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ready" if all_ok else "not_ready", "checks": checks},
    )


@app.get("/live", tags=["Health"])
async def liveness():
    return {"status": "alive"}


# ── Prometheus metrics endpoint ──
@app.get("/metrics", tags=["Monitoring"])
async def metrics():
    return Response(content=generate_latest(), media_type="text/plain")
