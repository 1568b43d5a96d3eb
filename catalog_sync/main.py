"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import select

from catalog_sync.api.routes import products, syncs, vendors
from catalog_sync.config import settings
from catalog_sync.db.models import Base, Vendor
from catalog_sync.db.session import AsyncSessionLocal, engine
from catalog_sync.worker.scheduler import setup_scheduler
from catalog_sync.worker.tasks import task_runner

# Configure structured logging
from catalog_sync.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

# Global scheduler
scheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global scheduler

    # Startup
    logger.info("Starting catalog sync service...")

    # Initialize database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Warm the priority cache and flag vendors without an adapter
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Vendor.slug))
        vendor_slugs = list(result.scalars().all())
    unsupported = await task_runner.initialize(vendor_slugs)
    logger.info(
        f"Loaded priorities for {len(vendor_slugs)} vendors ({len(unsupported)} without an adapter)"
    )

    if settings.scheduler_enabled:
        scheduler = setup_scheduler()
        scheduler.start()
        logger.info("Scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down...")

    if scheduler:
        scheduler.shutdown()

    rejected = task_runner.orchestrator.queue.clear()
    if rejected:
        logger.warning(f"Rejected {rejected} queued vendor requests on shutdown")

    await engine.dispose()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Catalog Sync",
    description="Reconcile distributor catalogs into one canonical product catalog",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

# Include API routes
app.include_router(products.router)
app.include_router(vendors.router)
app.include_router(syncs.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    # Run with uvicorn
    uvicorn.run(
        "catalog_sync.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
