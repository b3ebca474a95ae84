import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from imagesplit.api.routes import health, split
from imagesplit.config import settings
from imagesplit.services.split_service import get_split_service, shutdown_split_service

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Image Split API")
    settings.uploads_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Uploads directory: {settings.uploads_dir}")

    split_service = get_split_service()
    logger.info(f"Split executor: {split_service.executor.name}")

    yield

    # Shutdown
    logger.info("Shutting down Image Split API")
    shutdown_split_service()


app = FastAPI(
    title="Image Split API",
    description="Splits composite images into individual crops by region detection or grid tiling",
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(split.router)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Image Split API",
        "version": "1.0.0",
        "docs": "/docs",
    }
