"""
FastAPI main application for Fashion Fusion
"""
import logging
import os
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

# Add api directory to path for imports
api_dir = os.path.dirname(os.path.abspath(__file__))
if api_dir not in sys.path:
    sys.path.insert(0, api_dir)

from core.config import settings  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from middleware.logging_middleware import RequestLoggingMiddleware  # noqa: E402
from routers import fusion, genai, grid  # noqa: E402
from services.google_ai_service import google_ai_service  # noqa: E402

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Fashion Fusion API...")

    logger.info("=" * 60)
    logger.info("ENVIRONMENT VARIABLES CHECK")
    logger.info("=" * 60)

    google_key = settings.google_ai_api_key
    if google_key:
        key_preview = f"{google_key[:7]}...{google_key[-4:]}" if len(google_key) > 11 else "***"
        logger.info(f"✅ GOOGLE_AI_API_KEY is set: {key_preview}")
    else:
        logger.error("❌ GOOGLE_AI_API_KEY is NOT set - image generation will not work!")

    logger.info(f"Image model: {settings.google_ai_image_model}")
    logger.info(
        f"Grid: {settings.grid_columns}x{settings.grid_rows}, tolerance {settings.grid_size_tolerance_px}px, "
        f"max attempts {settings.grid_max_attempts}"
    )
    logger.info("=" * 60)

    yield

    logger.info("Shutting down Fashion Fusion API...")


app = FastAPI(
    title=settings.app_name,
    description="Person + fashion item compositing with pose and color variation grids",
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers"""
    google_ai_health = await google_ai_service.health_check()
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.version,
        "services": {"google_ai_studio": google_ai_health},
    }


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": settings.app_name,
        "version": settings.version,
        "docs": "/docs" if settings.environment == "development" else None,
        "endpoints": {
            "genai": "/api/genai",
            "grid": "/api/grid",
            "fusion": "/api/fusion",
        },
    }


@app.get("/usage-stats")
async def usage_stats():
    """Model usage statistics since startup"""
    return {"google_ai_studio": await google_ai_service.get_usage_statistics(), "timestamp": time.time()}


app.include_router(genai.router, prefix="/api", tags=["genai"])
app.include_router(grid.router, prefix="/api", tags=["grid"])
app.include_router(fusion.router, prefix="/api", tags=["fusion"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_config=None,  # Use our custom logging
        access_log=False,  # We handle this in middleware
    )
