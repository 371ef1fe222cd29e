"""
Banner Studio - Main Application

FastAPI application with:
- API versioning (/api/v1/)
- Image proxy and Flux relay (/api/image-proxy, /api/flux/*)
- Structured logging with structlog
- Prometheus metrics
- Global exception handling
- Storage abstraction (local + Supabase)
"""

import os
import time
import asyncio
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from banner_studio.core.config import settings
from banner_studio.core.database import create_db_and_tables, engine
from banner_studio.core.logging import setup_logging, get_logger, request_id_var
from banner_studio.core.exceptions import register_exception_handlers
from banner_studio.core.metrics import set_app_info, http_requests_total, http_request_duration_seconds
from banner_studio.core.object_urls import ObjectUrlRegistry
from banner_studio.api.dependencies import build_pipeline
from banner_studio.api.proxy import router as proxy_router
from banner_studio.api.v1 import api_v1_router


# =============================================================================
# Initialize Logging
# =============================================================================
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.LOG_FORMAT_JSON
)
logger = get_logger(__name__)


# =============================================================================
# Lifespan Handler
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - startup and shutdown."""
    startup_start = time.time()

    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    # Initialize database
    await create_db_and_tables()
    logger.info("database_initialized")

    # Result URLs live as long as the app
    app.state.registry = ObjectUrlRegistry(settings.PUBLIC_BASE_URL)

    set_app_info(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    if settings.REMBG_PRELOAD:
        pipeline = build_pipeline(app.state.registry)
        preloaded = await asyncio.to_thread(pipeline.preload)
        logger.info("rembg_models_preloaded" if preloaded else "rembg_models_preload_skipped")

    startup_time = time.time() - startup_start
    logger.info("application_ready", startup_time_seconds=startup_time)

    yield

    # Shutdown
    logger.info("application_shutting_down")
    revoked = app.state.registry.revoke_all()
    await engine.dispose()
    logger.info("application_shutdown_complete", revoked_object_urls=revoked)


# =============================================================================
# Create FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Marketing banner backend with:

    - **Partners**: brand profiles with logo, brand manual, reference banners, product photos
    - **Banners**: generated banner history, saved desktop/mobile pairs and enhanced banners
    - **Upload resolution**: copies AI-provider images into owned storage via proxy/relay fallbacks
    - **Background removal**: rembg with a brightness-driven primary and a fallback ladder
    - **Editor**: server-side rendering and export of banner compositions
    - **Proxies**: image proxy and Flux API relay for the browser
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# Middleware
# =============================================================================

# The proxies answer any origin with their own CORS headers and preflight handlers
PROXY_PATH_PREFIXES = ("/api/image-proxy", "/api/flux")


class ScopedCORSMiddleware(CORSMiddleware):
    """CORSMiddleware that leaves the given path prefixes to the routes."""

    def __init__(self, app, exempt_prefixes=(), **kwargs):
        super().__init__(app, **kwargs)
        self.exempt_prefixes = tuple(exempt_prefixes)

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["path"].startswith(self.exempt_prefixes):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


# CORS
cors_origins = settings.CORS_ORIGINS.split(",")
app.add_middleware(
    ScopedCORSMiddleware,
    exempt_prefixes=PROXY_PATH_PREFIXES,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_request_timing(request: Request, call_next):
    """Track request timing for metrics and tag logs with a request id."""
    token = request_id_var.set(request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16])
    start_time = time.time()
    try:
        response = await call_next(request)
    finally:
        duration = time.time() - start_time
        request_id = request_id_var.get()
        request_id_var.reset(token)

    endpoint = request.scope.get("route").path if request.scope.get("route") else request.url.path

    http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint
    ).observe(duration)

    http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code
    ).inc()

    response.headers["X-Process-Time"] = str(duration)
    response.headers["X-Request-ID"] = request_id

    return response


# =============================================================================
# Register Exception Handlers
# =============================================================================
register_exception_handlers(app)


# =============================================================================
# Include API Routers
# =============================================================================
app.include_router(api_v1_router)
app.include_router(proxy_router, prefix="/api", tags=["proxy"])


# =============================================================================
# Static Files
# =============================================================================

# Local storage buckets, served at the URLs LocalStorage.get_public_url builds
if not settings.SUPABASE_URL:
    os.makedirs(settings.LOCAL_STORAGE_PATH, exist_ok=True)
    app.mount("/static/storage", StaticFiles(directory=settings.LOCAL_STORAGE_PATH), name="storage")


# =============================================================================
# Root Endpoints
# =============================================================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/api/docs",
        "api_v1": "/api/v1",
        "metrics": "/api/v1/metrics"
    }


@app.get("/health", tags=["health"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


@app.get("/ready", tags=["health"])
async def ready(request: Request):
    """Readiness check - verifies dependencies are available."""
    checks = {
        "database": False,
        "registry": getattr(request.app.state, "registry", None) is not None,
        "flux_configured": bool(settings.FLUX_API_KEY),
        "openai_configured": bool(settings.OPENAI_API_KEY),
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        logger.warning("readiness_database_failed", error=str(e))

    # Provider keys are reported but only database and registry gate readiness
    all_ready = checks["database"] and checks["registry"]

    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "ready": all_ready,
            "checks": checks,
        }
    )


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "banner_studio.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
