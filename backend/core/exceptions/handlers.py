from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError
import logging

from .api_exceptions import APIException, CartValidationException
from .utils import format_error_response, get_correlation_id

logger = logging.getLogger(__name__)


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle custom API exceptions"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} [{exc.correlation_id}] on {request.url.path}: {exc.detail}")
    extra = {}
    if exc.detail != exc.message:
        extra["detail"] = exc.detail
    if exc.errors:
        extra["errors"] = exc.errors
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            exc.message,
            status_code=exc.status_code,
            error_code=exc.error_code,
            correlation_id=exc.correlation_id,
            **extra
        )
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            str(exc.detail),
            status_code=exc.status_code,
            error_code=f"HTTP_{exc.status_code}"
        )
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body validation errors"""
    if request.url.path.rstrip("/") == "/checkout":
        # A malformed cart is reported like a stale one, line by line
        cart_errors = [
            f"{'.'.join(str(loc) for loc in error['loc'][1:]) or 'cart'}: {error['msg']}"
            for error in exc.errors()
        ]
        return await api_exception_handler(request, CartValidationException(errors=cart_errors))

    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"][1:])  # Skip 'body' prefix
        errors[field] = error["msg"]

    return JSONResponse(
        status_code=422,
        content=format_error_response(
            "Validation failed",
            status_code=422,
            error_code="VALIDATION_ERROR",
            errors=errors
        )
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy database errors"""
    correlation_id = get_correlation_id()
    logger.error(f"Database error [{correlation_id}]: {exc}", exc_info=exc)

    return JSONResponse(
        status_code=500,
        content=format_error_response(
            "A database error occurred",
            status_code=500,
            error_code="DATABASE_ERROR",
            correlation_id=correlation_id
        )
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    correlation_id = get_correlation_id()
    logger.error(f"Unexpected error [{correlation_id}]: {exc}", exc_info=exc)

    return JSONResponse(
        status_code=500,
        content=format_error_response(
            "An unexpected error occurred",
            status_code=500,
            error_code="INTERNAL_ERROR",
            correlation_id=correlation_id
        )
    )
