"""Middleware and exception handlers for the FastAPI application."""

import time
import traceback
import uuid

from fastapi import Request, Response
from fastapi.responses import JSONResponse

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


async def add_request_id(request: Request, call_next: callable) -> Response:
    """Attach a request ID to the request state for tracing."""
    request.state.request_id = str(uuid.uuid4())
    return await call_next(request)


async def log_requests(request: Request, call_next: callable) -> Response:
    """Log method, path, status and duration of every request."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.with_context(request_id=getattr(request.state, "request_id", None)).info(
        f"Handled request {request.method} {request.url.path} in {duration:.2f} seconds. "
        f"Response code: {response.status_code}"
    )
    return response


async def exception_logging_middleware(request: Request, call_next: callable) -> Response:
    """Log unhandled exceptions and turn them into a 500 response.

    Args:
    ----
        request (Request): The incoming request.
        call_next (callable): The next middleware in the chain.

    Returns:
    -------
        Response: The response to the incoming request.

    """
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(f"Unhandled exception: {exc}\n{traceback.format_exc()}")

        response_content = {
            "detail": f"Internal Server Error: {exc.__class__.__name__}: {str(exc)}"
        }
        if settings.DEBUG:
            response_content["trace"] = traceback.format_exc()

        return JSONResponse(status_code=500, content=response_content)


async def not_found_exception_handler(request: Request, exc: NotFoundException) -> JSONResponse:
    """Exception handler for NotFoundException.

    Returns:
    -------
        JSONResponse: A 404 Not Found status response that details the error message.

    """
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def bad_request_exception_handler(request: Request, exc: BadRequestError) -> JSONResponse:
    """Map BadRequestError (signature and payload rejections included) to 400."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def service_unavailable_exception_handler(
    request: Request, exc: ServiceUnavailableError
) -> JSONResponse:
    """Map ServiceUnavailableError (an unconfigured gateway) to 503."""
    return JSONResponse(status_code=503, content={"detail": str(exc)})


async def invalid_state_exception_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    """Exception handler for InvalidStateError.

    Returns:
    -------
        JSONResponse: A 400 Bad Request status response that details the error message.

    """
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def external_service_exception_handler(
    request: Request, exc: ExternalServiceError
) -> JSONResponse:
    """Map a failing upstream provider to 502."""
    logger.with_context(service=exc.service_name).warning(f"Upstream failure: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


async def paybridge_exception_handler(request: Request, exc: PaybridgeException) -> JSONResponse:
    """Fallback for PaybridgeException subclasses without a dedicated handler."""
    return JSONResponse(status_code=500, content={"detail": str(exc)})
