"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers the catalog and wizard routers.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.dependencies import close_transform_backend, wizard_sessions
from .api.routers import catalog, wizard
from .core.config import settings
from .core.logging_config import configure_logging

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    logger.info("Onboarding API starting; transform backend at %s", settings.api_base_url)

    yield  # Application runs here

    # Shutdown: stop any status tracking still running and release the client
    for controller in wizard_sessions.values():
        controller.cancel_tracking("Application shutdown")
    await close_transform_backend()


# Initialize FastAPI application
app = FastAPI(
    title="Insurance Onboarding API",
    version="1.0.0",
    description="Upload policy, claim and cancel files, map their columns onto the canonical schema and track transformation jobs",
    lifespan=lifespan
)

# Strip whitespace from origins
allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(catalog.router)
app.include_router(wizard.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Insurance Onboarding API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "insurance-onboarding-api"
    }
