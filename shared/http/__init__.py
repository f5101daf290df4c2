"""HTTP helpers and exception definitions used across services."""

from .errors import (
    ChatLogUpsertError,
    MalformedEnvelopeError,
    NameMapLoadError,
    ProblemDetails,
    ProblemDetailsException,
    ResidentNotFoundError,
    StaffNotFoundError,
    StaffSessionRequiredError,
    WebhookUnauthorizedError,
    register_exception_handlers,
)

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
