"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from venuemap.config import settings
from venuemap.database import init_models
from venuemap.dependencies import close_services, get_cache_store, get_engine
from venuemap.routers import places, search
from venuemap.services.cache_store import CacheStore

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.venue_store_backend == "sql":
        try:
            await init_models(get_engine())
        except Exception as e:
            logger.error(f"Could not create venue tables, venue store will be unavailable: {e}")
    yield
    await close_services()


# Create FastAPI app
app = FastAPI(
    title="Venuemap API",
    description="Cafe and restaurant discovery backed by Google Places",
    version="1.0.0",
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(places.router, prefix="/api/v1")
app.include_router(search.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to Venuemap API",
        "version": "1.0.0",
        "docs": "/docs" if settings.environment == "development" else "disabled",
    }


@app.get("/health")
async def health_check(cache: CacheStore = Depends(get_cache_store)):
    """Health check endpoint with cache connectivity and statistics."""
    cache_ok = await cache.ping()
    return {
        "status": "healthy" if cache_ok else "degraded",
        "cache": {
            "connected": cache_ok,
            **cache.stats.as_dict(),
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "venuemap.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
