"""
Standardized response helpers for consistent API responses.

Lifecycle failures are mapped onto HTTP statuses here so every endpoint
reports the same error kind with the same status code.
"""

from typing import Any, TypeVar

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from webstability.core.errors import ErrorKind, InfrastructureError, Result

T = TypeVar("T")


class APIResponse(BaseModel):
    """Standard API response model"""

    success: bool
    message: str
    data: Any | None = None
    errors: list[str] | None = None


ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_STATUS_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.UNRESOLVED_FEEDBACK: status.HTTP_409_CONFLICT,
    ErrorKind.CHECKLIST_INCOMPLETE: status.HTTP_409_CONFLICT,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PAYMENT_REQUIRED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorKind.QUOTA_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.INFRASTRUCTURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def success_response(
    message: str = "Success",
    data: Any = None,
) -> APIResponse:
    """Create a successful response"""
    return APIResponse(success=True, message=message, data=data)


def error_response(
    message: str = "An error occurred",
    errors: list[str] | None = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
    kind: ErrorKind | None = None,
) -> HTTPException:
    """Create an error response"""
    response_data = APIResponse(success=False, message=message, errors=errors or [])
    detail = response_data.model_dump()
    if kind is not None:
        detail["kind"] = kind.value

    raise HTTPException(status_code=status_code, detail=detail)


def not_found_response(message: str = "Resource not found") -> HTTPException:
    """Create a not found error response"""
    return error_response(
        message=message, status_code=status.HTTP_404_NOT_FOUND, kind=ErrorKind.NOT_FOUND
    )


def unwrap_or_raise(result: Result[T]) -> T:
    """Return the result's value, or raise the HTTP error matching its kind."""
    if result.ok:
        return result.value

    failure = result.error
    errors = [str(item) for item in failure.details.get("missing") or []]
    errors += [str(item) for item in failure.details.get("errors") or []]
    return error_response(
        message=failure.message,
        errors=errors,
        status_code=ERROR_STATUS_CODES.get(
            failure.kind, status.HTTP_400_BAD_REQUEST
        ),
        kind=failure.kind,
    )


async def infrastructure_error_handler(request, exc: InfrastructureError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_503_SERVICE_UNAVAILABLE)
    body = APIResponse(success=False, message=exc.message, errors=[]).model_dump()
    body["kind"] = exc.kind.value
    return JSONResponse(status_code=status_code, content={"detail": body})
