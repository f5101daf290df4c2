"""Protocol definitions for care record storage backends."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from shared.models import (
    ChatLogRecord,
    DailyVitalRecord,
    MedicalHistory,
    Medication,
    ResidentProfile,
    ResidentSummary,
    RosterEntry,
    Staff,
)


class StorageError(RuntimeError):
    """Raised when the care record store cannot complete an operation."""

    def __init__(self, message: str, *, original: Exception | None = None) -> None:
        super().__init__(message)
        self.original = original


class CareStore(Protocol):
    """Operations the services need from the facility's relational store."""

    async def fetch_roster(self) -> list[RosterEntry]:
        """Return every ``(id, name)`` pair on the resident roster."""

    async def upsert_chat_logs(self, records: Sequence[ChatLogRecord]) -> None:
        """Insert ``records``, replacing existing rows that share an ``id``.

        The whole batch is written atomically: either every record is
        persisted or none is.
        """

    async def list_residents(self) -> list[ResidentSummary]:
        """Return resident summaries ordered by room."""

    async def get_resident(self, resident_id: str) -> ResidentProfile | None: ...

    async def list_medical_histories(self, resident_id: str) -> list[MedicalHistory]: ...

    async def list_medications(self, resident_id: str) -> list[Medication]: ...

    async def list_daily_records(
        self,
        *,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[DailyVitalRecord]:
        """Return vital records newest first, optionally filtered."""

    async def list_chat_logs(
        self,
        *,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ChatLogRecord]:
        """Return chat logs newest first, optionally filtered."""

    async def insert_daily_record(self, record: DailyVitalRecord) -> None: ...

    async def list_staff(self) -> list[Staff]: ...

    async def get_staff(self, staff_id: str) -> Staff | None: ...


__all__ = ["CareStore", "StorageError"]
