"""
Typed application errors and their HTTP rendering.

Services raise these; the exception handler registered in main.py turns
them into `{"detail": ..., "code": ...}` responses. Route handlers never
build error responses themselves.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.core.logging import get_logger

logger = get_logger(__name__)


class TicketingError(Exception):
    code = "ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed"

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class NotFound(TicketingError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class InvalidState(TicketingError):
    code = "INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Operation not allowed in the current state"


class InsufficientInventory(TicketingError):
    code = "INSUFFICIENT_INVENTORY"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Not enough tickets available"


class Forbidden(TicketingError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed"


class Unauthenticated(TicketingError):
    code = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class Unavailable(TicketingError):
    code = "UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


class InvalidRequest(TicketingError):
    code = "INVALID_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Conflict(TicketingError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


async def ticketing_error_handler(request: Request, exc: TicketingError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log("request_rejected", code=exc.code, reason=exc.message, **exc.context)

    headers = None
    if isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TicketingError, ticketing_error_handler)
