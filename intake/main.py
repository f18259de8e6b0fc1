"""
Application entry point with database pool lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from intake.config import settings
from intake.db.pool import db_pool
from intake.db.schema import apply_schema
from intake.features.workflow.api.router import router as workflow_router
from intake.infrastructure.observability.logging import get_logger, setup_logging
from intake.routes import health, webhooks
from intake.services.publishing import shopify_publisher

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        logger.info("Initializing database pool")
        await db_pool.initialize()

        if settings.DB_APPLY_SCHEMA:
            await apply_schema()
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        raise

    logger.info(
        "All services initialized successfully",
        services=["database_pool"],
        shopify_configured=shopify_publisher.store is not None,
    )

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await shopify_publisher.close()
    except Exception as e:
        logger.error("Error closing Shopify client", error=str(e))
        shutdown_errors.append(f"Shopify: {e}")

    # Close database pool last (may have active connections)
    try:
        logger.info("Closing database pool")
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
        shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Product Intake Workflow",
    description="Role-gated product intake pipeline with audit trail and Shopify publishing",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(workflow_router)
app.include_router(webhooks.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


def main() -> None:
    import uvicorn

    uvicorn.run("intake.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
