"""In-memory care record store used for local runs and tests."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence, TypeVar

from pydantic import BaseModel

from shared.models import (
    JST,
    ChatLogRecord,
    DailyVitalRecord,
    MedicalHistory,
    Medication,
    ResidentProfile,
    ResidentSummary,
    RosterEntry,
    Staff,
)

from .care_store import StorageError

_Record = TypeVar("_Record", DailyVitalRecord, ChatLogRecord)


class FixtureLoadError(StorageError):
    """Raised when a seed document for the in-memory store cannot be read."""


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=JST)


def _filter_records(
    records: Iterable[_Record],
    time_of: Any,
    *,
    user_id: str | None,
    start: datetime | None,
    end: datetime | None,
    limit: int | None,
) -> list[_Record]:
    selected = [
        record
        for record in records
        if (user_id is None or record.user_id == user_id)
        and (start is None or _aware(time_of(record)) >= _aware(start))
        and (end is None or _aware(time_of(record)) <= _aware(end))
    ]
    selected.sort(key=lambda record: _aware(time_of(record)), reverse=True)
    if limit is not None:
        selected = selected[: max(limit, 0)]
    return [record.model_copy() for record in selected]


class InMemoryCareStore:
    """Dictionary backed store mirroring the relational store's semantics."""

    def __init__(
        self,
        *,
        residents: Iterable[ResidentProfile | Mapping[str, Any]] = (),
        staff: Iterable[Staff | Mapping[str, Any]] = (),
        medical_histories: Iterable[MedicalHistory | Mapping[str, Any]] = (),
        medications: Iterable[Medication | Mapping[str, Any]] = (),
        daily_records: Iterable[DailyVitalRecord | Mapping[str, Any]] = (),
        chat_logs: Iterable[ChatLogRecord | Mapping[str, Any]] = (),
    ) -> None:
        self._residents: dict[str, dict[str, Any]] = {}
        for resident in residents:
            row = resident.model_dump() if isinstance(resident, BaseModel) else dict(resident)
            profile = ResidentProfile.model_validate(row)
            self._residents[profile.id] = row
        self._staff = {item.id: item for item in map(Staff.model_validate, staff)}
        self._medical_histories = [MedicalHistory.model_validate(item) for item in medical_histories]
        self._medications = [Medication.model_validate(item) for item in medications]
        self._daily_records = {
            item.id: item for item in map(DailyVitalRecord.model_validate, daily_records)
        }
        self._chat_logs = {item.id: item for item in map(ChatLogRecord.model_validate, chat_logs)}

    @classmethod
    def from_fixture(cls, path: str | Path) -> "InMemoryCareStore":
        """Seed a store from a JSON document keyed by table name."""

        fixture_path = Path(path)
        try:
            payload = json.loads(fixture_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise FixtureLoadError(f"{fixture_path}: file not found", original=exc) from exc
        except json.JSONDecodeError as exc:
            raise FixtureLoadError(f"{fixture_path}: invalid JSON ({exc.msg})", original=exc) from exc
        if not isinstance(payload, Mapping):
            raise FixtureLoadError(f"{fixture_path}: top-level JSON payload must be an object")
        try:
            return cls(
                residents=payload.get("users", ()),
                staff=payload.get("staff", ()),
                medical_histories=payload.get("medical_histories", ()),
                medications=payload.get("medications", ()),
                daily_records=payload.get("daily_records", ()),
                chat_logs=payload.get("chat_logs", ()),
            )
        except (TypeError, ValueError) as exc:
            raise FixtureLoadError(f"{fixture_path}: invalid row ({exc})", original=exc) from exc

    @property
    def chat_logs(self) -> dict[str, ChatLogRecord]:
        """Return a snapshot of stored chat logs keyed by id."""

        return dict(self._chat_logs)

    @property
    def daily_records(self) -> dict[str, DailyVitalRecord]:
        return dict(self._daily_records)

    async def fetch_roster(self) -> list[RosterEntry]:
        return [
            RosterEntry(id=row.get("id"), name=row.get("name"))
            for row in self._residents.values()
        ]

    async def list_residents(self) -> list[ResidentSummary]:
        summaries = [ResidentSummary.model_validate(row) for row in self._residents.values()]
        summaries.sort(key=lambda item: (item.building_room is None, item.building_room or "", item.id))
        return summaries

    async def get_resident(self, resident_id: str) -> ResidentProfile | None:
        row = self._residents.get(resident_id)
        return ResidentProfile.model_validate(row) if row is not None else None

    async def list_medical_histories(self, resident_id: str) -> list[MedicalHistory]:
        return [item for item in self._medical_histories if item.user_id == resident_id]

    async def list_medications(self, resident_id: str) -> list[Medication]:
        return [item for item in self._medications if item.user_id == resident_id]

    async def list_daily_records(
        self,
        *,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[DailyVitalRecord]:
        return _filter_records(
            self._daily_records.values(),
            lambda record: record.record_time,
            user_id=user_id,
            start=start,
            end=end,
            limit=limit,
        )

    async def list_chat_logs(
        self,
        *,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ChatLogRecord]:
        return _filter_records(
            self._chat_logs.values(),
            lambda record: record.send_time,
            user_id=user_id,
            start=start,
            end=end,
            limit=limit,
        )

    async def upsert_chat_logs(self, records: Sequence[ChatLogRecord]) -> None:
        unknown = sorted({record.user_id for record in records} - set(self._residents))
        if unknown:
            raise StorageError(
                f"chat_logs.user_id violates foreign key: {', '.join(unknown)}"
            )
        for record in records:
            self._chat_logs[record.id] = record.model_copy()

    async def insert_daily_record(self, record: DailyVitalRecord) -> None:
        if record.id in self._daily_records:
            raise StorageError(f"daily_records.id '{record.id}' already exists")
        if record.user_id not in self._residents:
            raise StorageError(f"daily_records.user_id violates foreign key: {record.user_id}")
        self._daily_records[record.id] = record.model_copy()

    async def list_staff(self) -> list[Staff]:
        return [self._staff[key] for key in sorted(self._staff)]

    async def get_staff(self, staff_id: str) -> Staff | None:
        return self._staff.get(staff_id)


__all__ = ["FixtureLoadError", "InMemoryCareStore"]
