# backend/portfolio/errors.py
"""
Domain error taxonomy.

Services raise these; the HTTP boundary maps them to
{"success": false, "message": ...} with the status of the subclass.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class InvalidInput(DomainError):
    default_message = "Invalid input"


class SlotConflict(DomainError):
    default_message = "This time slot is no longer available"


class InvalidSignature(DomainError):
    default_message = "Invalid payment signature"


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized"


class Unauthorized(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class TooLate(DomainError):
    default_message = "Cannot cancel booking less than 24 hours in advance"


class LimitExceeded(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Download limit exceeded"


class Expired(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Invalid or expired download link"


class GatewayError(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment provider unavailable"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid input")
    else:
        message = InvalidInput.default_message
    return error_response(status.HTTP_400_BAD_REQUEST, message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
