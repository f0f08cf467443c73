"""
IPTV PVR - FastAPI Backend

Serves channels, groups, providers, recordings and catchup stream URLs
built from an extended M3U playlist and an XMLTV guide.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from iptv_pvr.config import get_settings
from iptv_pvr.services.cache import get_cache
from iptv_pvr.services.iptv_data import get_iptv_data
from iptv_pvr.services.refresh_worker import get_refresh_worker
from iptv_pvr.routers import channels, epg, recordings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Starting IPTV PVR backend...")

    # Initialize artifact cache database
    cache = await get_cache()
    await cache.clear_expired()
    logger.info("Cache initialized")

    data = get_iptv_data()
    if await data.reload():
        logger.info(f"Initial load complete: {await data.get_stats()}")
    else:
        logger.warning("Initial playlist load failed, channels will be empty until the next reload")

    worker = get_refresh_worker()
    await worker.start()

    yield

    logger.info("Shutting down IPTV PVR backend...")
    await worker.stop()


# Create FastAPI app
settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="IPTV playlist and catchup backend",
    lifespan=lifespan
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(channels.router)
app.include_router(epg.router)
app.include_router(recordings.router)


# API endpoints
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    data = get_iptv_data()
    return {
        "status": "healthy",
        "backend": data.get_backend_name(),
        "version": data.get_backend_version(),
    }


@app.get("/api/stats")
async def get_stats():
    """Get loaded data and refresh statistics."""
    data = get_iptv_data()
    return {
        **await data.get_stats(),
        "refresh": get_refresh_worker().get_stats(),
    }


# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "iptv_pvr.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
