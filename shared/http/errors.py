"""Problem details and custom exceptions for HTTP responses."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping, cast

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.observability.logger import get_logger

__all__ = [
    "ChatLogUpsertError",
    "MalformedEnvelopeError",
    "NameMapLoadError",
    "ProblemDetails",
    "ProblemDetailsException",
    "ResidentNotFoundError",
    "StaffNotFoundError",
    "StaffSessionRequiredError",
    "WebhookUnauthorizedError",
    "register_exception_handlers",
]

logger = get_logger(__name__)

_PROBLEM_FIELDS = {"type", "title", "status", "detail", "instance"}
_PROBLEM_BASE = "https://appsheetto.jp/problems"


class ProblemDetails(BaseModel):
    """Representation of an RFC 7807 problem details payload."""

    type: str = Field(default="about:blank", description="URI identifying the error type")
    title: str = Field(default="An error occurred", description="Short human-readable summary")
    status: int = Field(default=status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail: str | None = Field(default=None, description="Detailed description of the error")
    instance: str | None = Field(
        default=None, description="URI identifying the specific occurrence"
    )
    errors: list[Any] | None = Field(
        default=None, description="Detailed validation errors when applicable"
    )

    model_config = ConfigDict(extra="allow")


class ProblemDetailsException(RuntimeError):
    """Base exception carrying structured problem details metadata."""

    default_status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_title = "Service Error"
    default_type = "about:blank"

    def __init__(
        self,
        detail: str | None = None,
        *,
        status_code: int | None = None,
        title: str | None = None,
        type_uri: str | None = None,
        extensions: Mapping[str, Any] | None = None,
    ) -> None:
        message = detail or title or self.default_title
        super().__init__(message)
        self.detail = message
        self.status_code = status_code or self.default_status_code
        self.title = title or self.default_title
        self.problem_type = type_uri or self.default_type
        self.extensions = dict(extensions or {})

    def to_problem_details(self, *, instance: str | None = None) -> ProblemDetails:
        """Return a :class:`ProblemDetails` representation of the exception."""

        return ProblemDetails(
            type=self.problem_type,
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=instance,
            **self.extensions,
        )


class WebhookUnauthorizedError(ProblemDetailsException):
    """Raised when the chat sync webhook secret is missing or does not match."""

    default_status_code = status.HTTP_401_UNAUTHORIZED
    default_title = "Unauthorized"
    default_type = f"{_PROBLEM_BASE}/webhook-unauthorized"


class MalformedEnvelopeError(ProblemDetailsException):
    """Raised when a sync payload is not a JSON object or array of objects."""

    default_status_code = status.HTTP_400_BAD_REQUEST
    default_title = "Invalid JSON body"
    default_type = f"{_PROBLEM_BASE}/malformed-envelope"


class NameMapLoadError(ProblemDetailsException):
    """Raised when the resident roster cannot be read to build the name map."""

    default_title = "Name Map Unavailable"
    default_type = f"{_PROBLEM_BASE}/name-map-unavailable"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(detail=f"名寄せマップの読み込みに失敗: {reason}")


class ChatLogUpsertError(ProblemDetailsException):
    """Raised when chat log records cannot be written to the store."""

    default_title = "Upsert Failed"
    default_type = f"{_PROBLEM_BASE}/chat-log-upsert-failed"

    def __init__(self, reason: str, *, record_count: int) -> None:
        self.reason = reason
        self.record_count = record_count
        super().__init__(
            detail=f"Upsert failed: {reason}",
            extensions={"recordCount": record_count},
        )


class StaffSessionRequiredError(ProblemDetailsException):
    """Raised when a dashboard route is called without a staff session cookie."""

    default_status_code = status.HTTP_401_UNAUTHORIZED
    default_title = "Staff Session Required"
    default_type = f"{_PROBLEM_BASE}/staff-session-required"


class ResidentNotFoundError(ProblemDetailsException):
    """Raised when a requested resident does not exist."""

    default_status_code = status.HTTP_404_NOT_FOUND
    default_title = "Resident Not Found"
    default_type = f"{_PROBLEM_BASE}/resident-not-found"

    def __init__(self, resident_id: str) -> None:
        self.resident_id = resident_id
        super().__init__(
            detail=f"Resident '{resident_id}' was not found.",
            extensions={"residentId": resident_id},
        )


class StaffNotFoundError(ProblemDetailsException):
    """Raised when a login names a staff member that does not exist."""

    default_status_code = status.HTTP_404_NOT_FOUND
    default_title = "Staff Not Found"
    default_type = f"{_PROBLEM_BASE}/staff-not-found"

    def __init__(self, staff_id: str) -> None:
        self.staff_id = staff_id
        super().__init__(
            detail=f"Staff member '{staff_id}' was not found.",
            extensions={"staffId": staff_id},
        )


def _problem_response(problem: ProblemDetails) -> JSONResponse:
    payload = problem.model_dump(mode="json", exclude_none=True)
    return JSONResponse(
        payload,
        status_code=payload.get("status", status.HTTP_500_INTERNAL_SERVER_ERROR),
        media_type="application/problem+json",
    )


def _status_title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "HTTP Error"


def _normalize_detail(detail: Any) -> tuple[str | None, dict[str, Any]]:
    if isinstance(detail, Mapping):
        value = detail.get("detail") or detail.get("message") or detail.get("error")
        extras = {k: v for k, v in detail.items() if k not in _PROBLEM_FIELDS}
        return (str(value) if value is not None else None), extras
    if isinstance(detail, list):
        return None, {"errors": detail}
    if detail is None:
        return None, {}
    return str(detail), {}


def _http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_error = cast(StarletteHTTPException, exc)
    detail, extras = _normalize_detail(http_error.detail)
    problem = ProblemDetails(
        title=_status_title(http_error.status_code),
        status=http_error.status_code,
        detail=detail,
        instance=str(request.url),
        **extras,
    )
    return _problem_response(problem)


def _validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    validation_error = cast(RequestValidationError, exc)
    problem = ProblemDetails(
        type=f"{_PROBLEM_BASE}/request-validation",
        title="Request Validation Failed",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail="One or more request parameters failed validation.",
        instance=str(request.url),
        errors=jsonable_encoder(validation_error.errors()),
    )
    return _problem_response(problem)


def _problem_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    problem_exception = cast(ProblemDetailsException, exc)
    return _problem_response(problem_exception.to_problem_details(instance=str(request.url)))


def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", error=str(exc), path=str(request.url))
    problem = ProblemDetails(
        type=f"{_PROBLEM_BASE}/internal-server-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing the request.",
        instance=str(request.url),
    )
    return _problem_response(problem)


def register_exception_handlers(app: FastAPI) -> None:
    """Register shared exception handlers that emit RFC 7807 problem details."""

    app.add_exception_handler(ProblemDetailsException, _problem_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
