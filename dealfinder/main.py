"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from prometheus_fastapi_instrumentator import Instrumentator

from dealfinder.api.routes import notifications, search, watches
from dealfinder.bootstrap import build_services
from dealfinder.config import settings
from dealfinder.db.models import Base
from dealfinder.db.session import AsyncSessionLocal, engine

# Configure structured logging
from dealfinder.logging_config import setup_logging
from dealfinder.worker.scheduler import setup_scheduler

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting DealFinder...")

    # Initialize database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    services = build_services(AsyncSessionLocal)
    app.state.services = services

    # Warm the exchange rate table; failures leave it empty (fail-open)
    await services.currency_table.ensure_fresh()

    # Start scheduler
    scheduler = setup_scheduler(services.watch_runner, services.currency_table)
    scheduler.start()
    logger.info("Scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down...")
    scheduler.shutdown(wait=False)
    await services.close()
    await engine.dispose()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="DealFinder",
    description="Aggregate, rank and watch product deals across retailers",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health", "/favicon.ico"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

# Include API routes
app.include_router(search.router)
app.include_router(watches.router)
app.include_router(notifications.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/favicon.ico")
async def favicon():
    """Return empty favicon response to avoid 404 noise."""
    return Response(status_code=204)


if __name__ == "__main__":
    # Run with uvicorn
    uvicorn.run(
        "dealfinder.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
