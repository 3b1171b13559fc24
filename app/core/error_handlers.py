"""
Tail-end exception handlers. Services raise, routers let the exception
propagate, and these handlers shape every error into
{"success": false, "message": ...}.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    StatementError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str, headers=None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
        headers=headers,
    )


def _last_line(message: str) -> str:
    lines = [line for line in message.strip().split("\n") if line.strip()]
    return lines[-1] if lines else message


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if first.get("type") == "missing":
        return f"Missing required field: {field}" if field else "Request body is required"
    message = first.get("msg", "Invalid request")
    # pydantic prefixes messages raised from custom validators
    return message.removeprefix("Value error, ")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"An error occurred in {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return _error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _validation_message(exc)
    logger.info(f"Validation failed for {request.method} {request.url.path}: {message}")
    return _error_response(status.HTTP_400_BAD_REQUEST, message)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {request.method} {request.url.path}: {exc.detail}")
    return _error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        f"Rate limit exceeded: {exc.detail}",
    )


async def database_exception_handler(request: Request, exc: StatementError) -> JSONResponse:
    logger.error(f"An error occurred in {request.method} {request.url.path}: {exc}")

    if isinstance(exc, (OperationalError, InterfaceError)):
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Unable to reach the database server",
        )

    if isinstance(exc, IntegrityError):
        detail = _last_line(str(exc.orig))
        if "FOREIGN KEY" in detail.upper():
            return _error_response(
                status.HTTP_400_BAD_REQUEST,
                f"The provided id(s) needed to create the record were not found: {detail}",
            )
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            f"The following field(s) are already taken: {detail}",
        )

    source = str(exc.orig) if isinstance(exc, DBAPIError) and exc.orig is not None else str(exc)
    return _error_response(status.HTTP_400_BAD_REQUEST, _last_line(source))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"An error occurred in {request.method} {request.url.path}: {exc}")
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc) or exc.__class__.__name__,
        error="Something went wrong",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StatementError, database_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
