import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from visibility_stats.api.v1.router import api_v1_router
from visibility_stats.core.config import settings, validate_settings_for_production
from visibility_stats.core.exceptions import StatsQueryError
from visibility_stats.core.logging import setup_logging
from visibility_stats.core.metrics import PrometheusMiddleware, metrics_response
from visibility_stats.core.middleware import RequestLoggingMiddleware
from visibility_stats.core.rate_limit import limiter
from visibility_stats.core.sentry import init_sentry
from visibility_stats.db.postgres import engine

# Configure logging before anything else
setup_logging()
init_sentry()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    logger.info(
        "Starting visibility stats engine (tz=%s, platforms=%s)",
        settings.stats_timezone,
        ",".join(settings.tracked_platforms),
    )

    yield

    # Shutdown
    await engine.dispose()
    logger.info("Visibility stats engine shut down")


app = FastAPI(
    title="Visibility Stats",
    description="Daily brand visibility metrics: nightly rollup merged with real-time data",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


@app.exception_handler(StatsQueryError)
async def _stats_query_error_handler(request: Request, exc: StatsQueryError):
    logger.error(
        "Stats query failed on %s %s: %s",
        request.method,
        request.url.path,
        exc.detail,
        extra={"phase": exc.phase},
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "phase": exc.phase})


# Log unhandled exceptions with their traceback
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request logging + metrics middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PrometheusMiddleware)

# CORS: allowed_origins is comma-separated
_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

# API routes
app.include_router(api_v1_router)


@app.get("/api/v1/health")
async def health():
    return {"status": "ok", "timezone": settings.stats_timezone}


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()
