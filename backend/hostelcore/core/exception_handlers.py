"""
FastAPI exception handlers for custom exceptions.

WHY: Exception handlers convert the core's typed errors into JSON responses
with the status code each error class declares. Unauthorized responses carry
the deny reason so clients can tell a cross-organization request from a
missing role.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hostelcore.core.exceptions import AppException, Unauthorized

logger = logging.getLogger(__name__)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle AppException and its subclasses.

    Args:
        request: The FastAPI request object
        exc: The custom exception instance

    Returns:
        JSONResponse with error details
    """
    content = exc.to_dict()
    if isinstance(exc, Unauthorized) and exc.reason is not None:
        content["reason"] = getattr(exc.reason, "value", exc.reason)
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert Pydantic request validation errors to the common error format."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "status_code": 400,
            "details": {"errors": errors},
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTPException",
            "message": exc.detail,
            "status_code": exc.status_code,
            "details": None,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unexpected exceptions.

    WHY: Log the full traceback but return a generic error so that no
    implementation details leak to the client.
    """
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "status_code": 500,
            "details": None,
        },
    )
