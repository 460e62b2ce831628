"""Global exception handlers.

- SnowRailError → structured {"error": {...}} with a status per error type
- RequestValidationError → 400 with field-level details
- Exception (catch-all) → 500, never leaks internal details
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from snowrail.errors import (
    AuthorizationError,
    ConfigurationError,
    PaymentRequiredError,
    PayrollNotFoundError,
    SnowRailError,
    StorageUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[SnowRailError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    PaymentRequiredError: status.HTTP_402_PAYMENT_REQUIRED,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    PayrollNotFoundError: status.HTTP_404_NOT_FOUND,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StorageUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: SnowRailError) -> int:
    """HTTP status for a domain error."""
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_502_BAD_GATEWAY


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(SnowRailError)
    async def snowrail_error_handler(request: Request, exc: SnowRailError) -> JSONResponse:
        """Handle domain errors."""
        code = status_for(exc)
        if code >= 500:
            logger.error("%s on %s: %s", exc.code, request.url.path, exc)
        elif not isinstance(exc, PaymentRequiredError):
            logger.info("%s on %s: %s", exc.code, request.url.path, exc)
        return JSONResponse(status_code=code, content={"error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request parsing errors in the same shape as ValidationError."""
        fields = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
                "message": err.get("msg", "invalid value"),
            }
            for err in exc.errors()
        ]
        logger.info("Validation error on %s: %s", request.url.path, fields)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": ValidationError("Request body is invalid", fields=fields).to_dict()
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception on %s", request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "message": "An unexpected error occurred",
                    "code": "INTERNAL_ERROR",
                }
            },
        )
