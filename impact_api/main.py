"""
Main FastAPI application
"""

import time
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.staticfiles import StaticFiles

from impact_api.core.config import settings
from impact_api.core.error_handlers import register_error_handlers
from impact_api.core.logging_config import setup_logging, request_logger
from impact_api.db.database import create_tables, engine
from impact_api.api.routes import api_router

setup_logging(
    log_level=settings.LOG_LEVEL,
    log_dir=settings.LOG_DIR if settings.LOG_TO_FILE else None
)

logger = structlog.get_logger()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting Impact API", environment=settings.ENVIRONMENT)
    try:
        await create_tables()
        logger.info("Impact API started successfully")
    except Exception as e:
        logger.error("Failed to start application", error=str(e))
        raise

    yield

    logger.info("Shutting down Impact API")
    await engine.dispose()


app = FastAPI(
    title="Impact API",
    description="Impact metrics, projects, pillars and focus areas for the NGO site",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts_list)

cors_origins = list(dict.fromkeys(settings.cors_origins_list))
logger.info("CORS origins configured", origins=cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    started = time.perf_counter()
    response = await call_next(request)
    request_logger.log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        response_time=time.perf_counter() - started,
        ip_address=request.client.host if request.client else "",
        request_id=request_id
    )
    response.headers["X-Request-ID"] = request_id
    return response


register_error_handlers(app)

app.include_router(api_router, prefix="/api/v1")

if not settings.use_r2:
    uploads_dir = Path(settings.UPLOAD_DIR)
    uploads_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(uploads_dir)), name="uploads")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Impact API",
        "version": VERSION,
        "docs": "/api/docs"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "impact-api",
        "version": VERSION,
        "environment": settings.ENVIRONMENT
    }
