"""
Clinic Bot API

FastAPI application entry point: WhatsApp webhook and health probes.
Reminders and the daily trial check run in the RQ worker (`app.worker`).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.config import settings
from app.api.routes import health, webhook
from app.core.notifications import schedule_next
from app.infra.jobs import TaskQueueError
from app.runtime import Runtime


def setup_logging() -> None:
    """Configure logging based on environment."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")
    health.set_start_time()

    runtime = await Runtime.build(settings)
    app.state.runtime = runtime

    # Development only; production schemas come from migrations
    if settings.is_development:
        try:
            await runtime.database.create_all()
            logger.info("Database tables initialized")
        except Exception as e:
            logger.warning(f"Database init skipped: {e}")

    try:
        await schedule_next(runtime.jobs)
    except TaskQueueError as e:
        logger.warning(f"Trial expiry check not scheduled: {e}")

    yield

    logger.info("Shutting down application...")
    await runtime.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Clinic Bot API",
    description="Multi-tenant WhatsApp appointment booking for clinics.",
    version=health.VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Validation error", "detail": exc.errors()},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log and hide uncaught errors outside development."""
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    detail = str(exc) if settings.is_development else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "detail": detail},
    )


app.include_router(health.router)
app.include_router(webhook.router)


@app.get("/", tags=["Root"])
async def root() -> dict:
    return {
        "name": settings.app_name,
        "version": health.VERSION,
        "environment": settings.app_env,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
