"""Observability utilities shared across the care record services."""

from .audit import AuditEvent, AuditRepository, LoggerAuditRepository, record_audit
from .logger import (
    configure_logging,
    generate_request_id,
    get_logger,
    get_request_id,
    request_context,
)
from .middleware import (
    CorrelationIdMiddleware,
    RequestTimingMiddleware,
    annotate_request,
    request_annotations,
)

__all__ = [
    "AuditEvent",
    "AuditRepository",
    "CorrelationIdMiddleware",
    "LoggerAuditRepository",
    "RequestTimingMiddleware",
    "annotate_request",
    "configure_logging",
    "generate_request_id",
    "get_logger",
    "get_request_id",
    "record_audit",
    "request_annotations",
    "request_context",
]
