"""
Application error taxonomy and the FastAPI handlers that render it.

Every error raised by the payment services derives from ``AppError`` and
carries the HTTP status it maps to. Gateway errors keep their raw detail in
the log only; clients get a generic message.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = None

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def detail(self):
        return self.public_message or self.message


class ValidationError(AppError):
    """Malformed request or webhook body. Never retried."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Invalid payload", errors=None, **context):
        super().__init__(message, **context)
        self.errors = errors or []

    @property
    def detail(self):
        if self.errors:
            return {"message": self.message, "errors": self.errors}
        return self.message


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AuthError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class OrderNotFoundError(NotFoundError):
    """The invoice number does not resolve to a Booking or Cart."""


class InvalidTransitionError(AppError):
    status_code = status.HTTP_409_CONFLICT


class GatewayError(AppError):
    """Transport or protocol failure talking to the payment gateway."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Payment gateway unavailable, please try again"


class GatewayAuthError(GatewayError):
    pass


class GatewayRequestError(GatewayError):
    def __init__(self, message: str = "", status_code_received: int | None = None, **context):
        super().__init__(message, **context)
        self.status_code_received = status_code_received


class GatewayPendingError(GatewayError):
    """The gateway has not settled the transaction yet."""


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if isinstance(exc, GatewayError):
            logger.error("Gateway failure on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected request body on %s", request.url.path)
        errors = [
            {"loc": list(err.get("loc", [])), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": errors})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
