from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
import logging

from ..core.exceptions import PasskeyException

logger = logging.getLogger(__name__)


def error_response(request: Request, exc: PasskeyException) -> JSONResponse:
    """Structured error body for a passkey failure"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.message,
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "path": str(request.url.path)
        }
    )


async def passkey_exception_handler(request: Request, exc: PasskeyException):
    """Handle passkey exceptions with a safe, structured response"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc.message} - {request.url.path}")
    else:
        logger.info(f"{exc.error_code}: {exc.message} - {request.url.path}")
    return error_response(request, exc)


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with structured error response"""
    logger.warning(f"HTTP {exc.status_code}: {exc.detail} - {request.url.path}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "status_code": exc.status_code,
            "path": str(request.url.path)
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with detailed error information"""
    logger.warning(f"Validation error: {exc.errors()} - {request.url.path}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Validation error",
            "error_code": "INVALID_INPUT",
            "status_code": 422,
            "errors": jsonable_encoder(exc.errors()),
            "path": str(request.url.path)
        }
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unexpected error: {str(exc)} - {request.url.path}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "status_code": 500,
            "path": str(request.url.path)
        }
    )
