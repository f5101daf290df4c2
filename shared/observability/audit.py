"""Audit helpers for recording record-changing events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from .logger import get_logger, get_request_id

__all__ = [
    "AuditEvent",
    "AuditRepository",
    "LoggerAuditRepository",
    "get_audit_repository",
    "record_audit",
]


@dataclass(slots=True)
class AuditEvent:
    """Structured payload describing an auditable event."""

    event: str
    status: str
    actor: str | None = None
    subject: str | None = None
    request_id: str | None = None
    service: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation of the audit entry."""

        return {
            "event": self.event,
            "status": self.status,
            "actor": self.actor,
            "subject": self.subject,
            "requestId": self.request_id,
            "service": self.service,
            "metadata": dict(self.metadata),
            "createdAt": self.created_at.isoformat(),
        }


class AuditRepository(Protocol):
    """Destination for audit events."""

    async def persist(self, audit: AuditEvent) -> None:  # pragma: no cover - interface definition
        """Persist ``audit`` to the underlying storage backend."""


class LoggerAuditRepository:
    """Write audit entries to the structured log stream."""

    def __init__(self) -> None:
        self._logger = get_logger("audit")

    async def persist(self, audit: AuditEvent) -> None:
        payload = audit.to_dict()
        event = payload.pop("event")
        self._logger.info(f"{event}_audit", **payload)


_DEFAULT_REPOSITORY: AuditRepository | None = None


def get_audit_repository() -> AuditRepository:
    """Return the process-wide audit repository."""

    global _DEFAULT_REPOSITORY
    if _DEFAULT_REPOSITORY is None:
        _DEFAULT_REPOSITORY = LoggerAuditRepository()
    return _DEFAULT_REPOSITORY


async def record_audit(
    event: str,
    *,
    status: str,
    actor: str | None = None,
    subject: str | None = None,
    metadata: dict[str, Any] | None = None,
    repository: AuditRepository | None = None,
    request_id: str | None = None,
    service: str | None = None,
) -> AuditEvent:
    """Capture an audit event and persist it using the configured repository."""

    repo = repository or get_audit_repository()
    context = structlog.contextvars.get_contextvars()

    audit_entry = AuditEvent(
        event=event,
        status=status,
        actor=actor,
        subject=subject,
        request_id=request_id or get_request_id(),
        service=service or context.get("service"),
        metadata=dict(metadata or {}),
    )

    await repo.persist(audit_entry)
    return audit_entry
