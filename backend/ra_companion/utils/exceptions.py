"""
HTTP Exception helpers to reduce code duplication in routes.

Usage:
    from ra_companion.utils.exceptions import raise_bad_request, raise_not_found

    raise_bad_request("Invalid or missing id parameter")
    raise_not_found("Response")

Every error body is rendered as ``{"error": detail, **extra}`` by
``http_exception_handler`` (registered in main.py).
"""

from typing import Any, Dict, NoReturn, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class APIError(HTTPException):
    """HTTPException carrying extra fields for the JSON error body."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.extra = extra or {}


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTP errors as {"error": ...} instead of FastAPI's {"detail": ...}."""
    body: Dict[str, Any] = {"error": exc.detail}
    if isinstance(exc, APIError):
        body.update(exc.extra)
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request body/query validation failures as 400 {"error": ...}."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        detail = "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": detail})


def raise_bad_request(detail: str) -> NoReturn:
    """Raise HTTP 400 Bad Request."""
    raise APIError(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    )


def raise_not_found(resource: str, id: int | str | None = None) -> NoReturn:
    """Raise HTTP 404 Not Found."""
    if id is not None:
        detail = f"{resource} with id {id} not found"
    else:
        detail = f"{resource} not found"
    raise APIError(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail,
    )


def raise_too_many_requests(
    detail: str,
    retry_after: int,
    headers: Optional[Dict[str, str]] = None,
) -> NoReturn:
    """Raise HTTP 429 Too Many Requests with Retry-After header and body field."""
    all_headers = {"Retry-After": str(retry_after)}
    if headers:
        all_headers.update(headers)
    raise APIError(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=detail,
        headers=all_headers,
        extra={"retryAfter": retry_after},
    )
