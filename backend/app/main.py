"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.routes import api_router
from app.core.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Logs provider configuration (never fatal)
    - Starts the job reaper
    - Registers the call webhook with the call provider

    Shutdown:
    - Stops dispatch loops and pending retries
    - Closes all job streams
    """
    # ========================
    # STARTUP
    # ========================
    logger.info("Starting Campaign Dialer...")

    from app.core.validation import validate_providers_on_startup
    validate_providers_on_startup(settings)

    from app.services.campaign_service import get_campaign_service
    campaign = get_campaign_service()
    await campaign.startup()

    logger.info("Campaign Dialer started successfully")

    yield  # Application is running

    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Shutting down Campaign Dialer...")

    try:
        await campaign.shutdown()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")

    logger.info("Campaign Dialer shutdown complete")


app = FastAPI(
    title="Campaign Dialer",
    description="Outbound AI call and SMS campaigns with live progress streaming",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"message": "Campaign Dialer API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns basic health status and in-memory state counts.
    """
    health = {"status": "healthy", "environment": settings.environment}

    try:
        from app.services.campaign_service import get_campaign_service
        health.update(get_campaign_service().stats())
    except Exception as e:
        health["campaign_service"] = f"error: {str(e)}"

    return health


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
