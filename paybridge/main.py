"""Main module of the FastAPI application.

Sets up the app, its middleware and exception handlers, and the lifespan
that builds the DI container and runs the metrics sidecar.
"""

import os
import subprocess
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from paybridge.api.metrics import MetricsServer
from paybridge.api.middleware import (
    add_request_id,
    bad_request_exception_handler,
    exception_logging_middleware,
    external_service_exception_handler,
    invalid_state_exception_handler,
    log_requests,
    not_found_exception_handler,
    paybridge_exception_handler,
    service_unavailable_exception_handler,
)
from paybridge.api.v1.api import api_router
from paybridge.core.config import settings
from paybridge.core.exceptions import (
    BadRequestError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundException,
    PaybridgeException,
    ServiceUnavailableError,
)
from paybridge.core.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the container and metrics server; drain notifications on shutdown."""
    from paybridge.core import container as container_mod
    from paybridge.core.container import initialize_container

    logger.info("Initializing dependency injection container...")
    initialize_container(settings)
    logger.info("Container initialized successfully")

    if settings.RUN_ALEMBIC_MIGRATIONS:
        logger.info("Running alembic migrations...")
        project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            cwd=project_dir,
        )

    metrics_server = MetricsServer(
        container_mod.container.metrics_renderer,
        container_mod.container.idempotency_store,
        port=settings.METRICS_PORT,
        host=settings.METRICS_HOST,
    )
    await metrics_server.start()
    try:
        yield
    finally:
        await container_mod.container.webhook_processor.drain_notifications()
        await metrics_server.stop()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# First registered = innermost
app.middleware("http")(exception_logging_middleware)
app.middleware("http")(log_requests)
app.middleware("http")(add_request_id)

app.exception_handler(NotFoundException)(not_found_exception_handler)
app.exception_handler(BadRequestError)(bad_request_exception_handler)
app.exception_handler(ServiceUnavailableError)(service_unavailable_exception_handler)
app.exception_handler(InvalidStateError)(invalid_state_exception_handler)
app.exception_handler(ExternalServiceError)(external_service_exception_handler)
app.exception_handler(PaybridgeException)(paybridge_exception_handler)
