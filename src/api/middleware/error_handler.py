"""Global error handling middleware for consistent error responses."""

import logging
import traceback
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors.

    Raise subclasses from routes; the middleware renders them with their
    status code and error type.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type: str = "api_error",
        errors: dict[str, list[str]] | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.errors = errors
        super().__init__(message)


class NotFoundError(APIError):
    """Shop, cart item or order not found."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND, "not_found")


class ValidationError(APIError):
    """Business-rule validation failure with optional field messages."""

    def __init__(self, message: str = "Validation error", errors: dict[str, list[str]] | None = None) -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_error", errors)


class AuthorizationError(APIError):
    """The caller does not own the cart line or order."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN, "authorization_error")


class StockError(APIError):
    """Requested quantity exceeds stock at order placement."""

    def __init__(self, message: str = "Insufficient stock", errors: dict[str, list[str]] | None = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT, "insufficient_stock", errors)


class PaymentError(APIError):
    """Payment could not be started or confirmed."""

    def __init__(self, message: str = "Payment failed") -> None:
        super().__init__(message, status.HTTP_402_PAYMENT_REQUIRED, "payment_error")


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    errors: dict[str, list[str]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response."""
    error_response = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        errors=errors,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


def field_errors(raw_errors: list[dict[str, Any]]) -> dict[str, list[str]]:
    """Group pydantic errors by dotted field path, dropping the location prefix.

    `("body", "shipping_address", "city")` becomes `shipping_address.city`.
    """
    grouped: dict[str, list[str]] = {}
    for error in raw_errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header", "cookie"):
            loc = loc[1:]
        key = ".".join(loc) or "__root__"
        grouped.setdefault(key, []).append(error.get("msg", "Invalid value"))
    return grouped


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation failures as a 422 field map."""
    errors = field_errors(list(exc.errors()))
    logger.info(
        "Request validation failed for %s",
        request.url.path,
        extra={"fields": sorted(errors)},
    )
    return create_error_response(
        error_type="validation_error",
        message="The given data was invalid.",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        errors=errors,
        request_id=request.headers.get("X-Request-ID"),
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Catch and format all exceptions.

    Logs full stack traces for unexpected errors while returning safe
    messages to clients.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        response = await call_next(request)
        return response

    except APIError as e:
        logger.warning(
            "API error: %s - %s",
            e.error_type,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return create_error_response(
            error_type=e.error_type,
            message=e.message,
            status_code=e.status_code,
            errors=e.errors,
            request_id=request_id,
        )

    except HTTPException as e:
        logger.warning(
            "HTTP exception: %s - %s",
            e.status_code,
            e.detail,
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="http_error",
            message=str(e.detail),
            status_code=e.status_code,
            request_id=request_id,
        )

    except Exception as e:
        logger.error(
            "Unhandled exception: %s\n%s",
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
