import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base for errors the API translates into ``{"error": message}``."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class PurchaseError(ServiceError):
    pass


class NotFoundError(PurchaseError):
    status_code = status.HTTP_404_NOT_FOUND


class NotAuthorizedError(PurchaseError):
    status_code = status.HTTP_403_FORBIDDEN


class BusinessRuleError(PurchaseError):
    status_code = status.HTTP_400_BAD_REQUEST


class AlreadyOwnedError(BusinessRuleError):
    def __init__(self):
        super().__init__("You already own this book")


class InsufficientBalanceError(BusinessRuleError):
    def __init__(self):
        super().__init__("Insufficient wallet balance")


class InvalidSignatureError(PurchaseError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self):
        super().__init__("Invalid payment signature")


class DeliveryFailedError(PurchaseError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error(exc.status_code, exc.message)


async def http_exception_handler(request: Request, exc: HTTPException):
    return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return _error(status.HTTP_400_BAD_REQUEST, ", ".join(messages))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
