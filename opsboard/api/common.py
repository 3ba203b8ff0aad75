"""
Shared helpers for the API routers: the response envelope, boundary date
validation and the exception handlers that keep error bodies in the same
``{success, message, error}`` shape as successful responses.
"""

import logging
from typing import Any, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from opsboard.models.schemas import ApiResponse
from opsboard.services.dates import is_iso_date


logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    400: 'Invalid request',
    401: 'Unauthorized',
    404: 'Not found',
    409: 'Conflict',
    500: 'Internal server error',
    503: 'Service unavailable',
}


def ok(data: Any = None, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(success=True, message=message, data=data)


def validate_date(value: Optional[str], field: str = 'date') -> Optional[str]:
    """
    Reject anything but ``YYYY-MM-DD`` with a 400; None passes through.

    Raises:
        HTTPException 400: malformed date.
    """
    if value is None:
        return None
    if not is_iso_date(value):
        raise HTTPException(status_code=400, detail=f"Invalid {field} format. Use YYYY-MM-DD")
    return value


def _error_body(status_code: int, detail: Any) -> dict:
    return ApiResponse(
        success=False,
        message=STATUS_MESSAGES.get(status_code, 'Request failed'),
        error=str(detail),
    ).model_dump()


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.status_code, exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query validation failures are boundary errors and answer 400."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = '.'.join(str(part) for part in first.get('loc', ()) if part != 'body')
    detail = f"{location}: {first.get('msg', 'invalid value')}" if location else first.get('msg', 'invalid request')
    logger.warning(f"Rejected {request.method} {request.url.path}: {detail}")
    return JSONResponse(status_code=400, content=_error_body(400, detail))
