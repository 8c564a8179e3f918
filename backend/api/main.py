"""
AIventory Alerts API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info(
        "api.startup",
        version=settings.app_version,
        env=settings.app_env,
        store_backend=settings.notification_store_backend,
        usage_profile=settings.usage_profile or "default",
    )
    yield
    logger.info("api.shutdown")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Inventory depletion forecasting and low-stock alerting",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import alerts, notifications, reports

app.include_router(alerts.router)
app.include_router(notifications.router)
app.include_router(reports.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
