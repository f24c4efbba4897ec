import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from vegindex.config.settings import get_settings
from vegindex.database.connection import dispose_engine, init_db
from vegindex.api.handlers import close_rendering_orchestrator, router
from vegindex.services.earth_engine_service import get_earth_engine_client
from vegindex.services.exceptions import RemoteComputeError
from vegindex.utils.async_helpers import shutdown_executor

# Get application settings
settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    logger.info(f"Initializing {settings.app_name}")
    logger.info(
        f"Database URL: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'Not configured'}"
    )
    logger.info(f"MinIO Endpoint: {settings.minio_endpoint}")

    try:
        get_earth_engine_client().connect()
    except RemoteComputeError as e:
        # Index routes fail until credentials are fixed; health reports it
        logger.error(f"Earth Engine unavailable at startup: {e.message}")

    try:
        await init_db()
        logger.info("Result cache tables ready")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}")
    await close_rendering_orchestrator()
    shutdown_executor()
    await dispose_engine()


# Create FastAPI app
app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# Include API routes
app.include_router(router)


@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


# For development/testing only - DON'T use this in production
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting FastAPI server for development...")
    uvicorn.run(
        "vegindex.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
