from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from typing import Optional
import logging

logger = logging.getLogger("uvicorn.error")


class CustomHTTPException(Exception):
    """A custom HTTPException that we can use for additional context."""
    def __init__(self, status_code: int, detail: str, error_code: str = None, headers: dict = None):
        self.status_code = status_code
        self.detail = detail
        self.error_code = error_code
        self.headers = headers
        super().__init__(detail)  # Initialize the base Exception with the detail message


class AuthFailure(Exception):
    """No identity could be resolved from the request."""


class BookmarkValidationError(ValueError):
    """A bookmark field is missing, blank or malformed."""
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class StoreError(Exception):
    """The backing store failed; the cause is logged, never shown to clients."""


def unauthorized() -> CustomHTTPException:
    return CustomHTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _error_body(detail, error_code: Optional[str] = None) -> dict:
    body = {"error": detail}
    if error_code:
        body["error_code"] = error_code
    return body


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors, reported as 400."""
    logger.warning(f"Validation error on {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("Invalid request body"),
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render every HTTP error as {"error": ...}."""
    if isinstance(exc, CustomHTTPException):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(f"HTTP {exc.status_code} on {request.url}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, exc.error_code),
            headers=exc.headers or {},
        )
    elif isinstance(exc, HTTPException):
        logger.info(f"HTTP {exc.status_code} on {request.url}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail),
            headers=exc.headers or {},
        )

    logger.error(f"Unexpected error on {request.url}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("An unexpected error occurred"),
    )
