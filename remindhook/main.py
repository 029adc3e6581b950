"""
FastAPI application with reminder store lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from remindhook import __version__
from remindhook.config import settings
from remindhook.infrastructure.observability.logging import get_logger, setup_logging
from remindhook.repositories import get_reminder_store
from remindhook.routes import executions, health, reminders

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, environment=settings.environment)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info(
        "Application starting",
        environment=settings.environment,
        store_backend=settings.STORE_BACKEND,
        scheduler_timezone=settings.SCHEDULER_TIMEZONE or "local",
    )

    store = get_reminder_store()
    try:
        await store.initialize()
        logger.info("Reminder store initialized", backend=settings.STORE_BACKEND)
    except Exception as e:
        logger.error("Failed to initialize reminder store", error=str(e))
        raise

    yield

    logger.info("Application shutting down")
    try:
        await store.close()
        logger.info("Reminder store closed")
    except Exception as e:
        logger.error("Error closing reminder store", error=str(e))


app = FastAPI(
    title="remindhook",
    description="Scheduled webhook reminders for team chat platforms",
    version=__version__,
    lifespan=lifespan,
)

# Execution routes first so /reminders/execute never matches /reminders/{reminder_id}
app.include_router(health.router)
app.include_router(executions.router)
app.include_router(reminders.router)


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


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
