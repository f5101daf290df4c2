"""Async PostgreSQL implementation of :class:`repositories.care_store.CareStore`."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Sequence

from sqlalchemy import Select, select
from sqlalchemy.dialects.postgresql import Insert, insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

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
from shared.observability.logger import get_logger

from .care_store import StorageError
from .schema import (
    chat_logs,
    daily_records,
    medical_histories,
    medications,
    metadata,
    staff,
    users,
)

logger = get_logger(__name__)


def chat_log_upsert_statement() -> Insert:
    """Return an ``INSERT ... ON CONFLICT (id) DO UPDATE`` for chat logs."""

    statement = pg_insert(chat_logs)
    return statement.on_conflict_do_update(
        index_elements=[chat_logs.c.id],
        set_={
            column.name: statement.excluded[column.name]
            for column in chat_logs.columns
            if column.name != "id"
        },
    )


class PostgresCareStore:
    """Care record store backed by PostgreSQL through SQLAlchemy's async engine."""

    def __init__(self, database_url: str, *, engine: AsyncEngine | None = None) -> None:
        self._engine: AsyncEngine = engine or create_async_engine(
            database_url, pool_pre_ping=True
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Provide a transactional connection scope, translating driver errors."""

        try:
            async with self._engine.begin() as connection:
                yield connection
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(str(exc), original=exc) from exc

    async def bootstrap_schema(self) -> None:
        """Create the care record tables when they do not exist yet."""

        async with self.transaction() as connection:
            await connection.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        """Dispose of the underlying engine."""

        await self._engine.dispose()

    async def _fetch(self, query: Select[Any]) -> list[dict[str, Any]]:
        async with self.transaction() as connection:
            result = await connection.execute(query)
            return [dict(row) for row in result.mappings()]

    # -- roster ---------------------------------------------------------------

    async def fetch_roster(self) -> list[RosterEntry]:
        rows = await self._fetch(select(users.c.id, users.c.name))
        return [RosterEntry.model_validate(row) for row in rows]

    async def list_residents(self) -> list[ResidentSummary]:
        query = select(
            users.c.id, users.c.name, users.c.building_room, users.c.status
        ).order_by(users.c.building_room.asc().nulls_last(), users.c.id)
        return [ResidentSummary.model_validate(row) for row in await self._fetch(query)]

    async def get_resident(self, resident_id: str) -> ResidentProfile | None:
        query = select(
            users.c.id,
            users.c.name,
            users.c.gender,
            users.c.birth_date,
            users.c.building_room,
            users.c.care_level,
            users.c.primary_doctor,
            users.c.emergency_contact,
        ).where(users.c.id == resident_id)
        rows = await self._fetch(query)
        return ResidentProfile.model_validate(rows[0]) if rows else None

    async def list_medical_histories(self, resident_id: str) -> list[MedicalHistory]:
        query = select(medical_histories).where(medical_histories.c.user_id == resident_id)
        return [MedicalHistory.model_validate(row) for row in await self._fetch(query)]

    async def list_medications(self, resident_id: str) -> list[Medication]:
        query = select(medications).where(medications.c.user_id == resident_id)
        return [Medication.model_validate(row) for row in await self._fetch(query)]

    # -- records --------------------------------------------------------------

    async def list_daily_records(
        self,
        *,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[DailyVitalRecord]:
        time_column = daily_records.c.record_time
        query = select(daily_records).order_by(time_column.desc())
        if user_id is not None:
            query = query.where(daily_records.c.user_id == user_id)
        if start is not None:
            query = query.where(time_column >= start)
        if end is not None:
            query = query.where(time_column <= end)
        if limit is not None:
            query = query.limit(limit)
        return [DailyVitalRecord.model_validate(row) for row in await self._fetch(query)]

    async def list_chat_logs(
        self,
        *,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ChatLogRecord]:
        time_column = chat_logs.c.send_time
        query = select(chat_logs).order_by(time_column.desc())
        if user_id is not None:
            query = query.where(chat_logs.c.user_id == user_id)
        if start is not None:
            query = query.where(time_column >= start)
        if end is not None:
            query = query.where(time_column <= end)
        if limit is not None:
            query = query.limit(limit)
        return [ChatLogRecord.model_validate(row) for row in await self._fetch(query)]

    async def upsert_chat_logs(self, records: Sequence[ChatLogRecord]) -> None:
        if not records:
            return
        statement = chat_log_upsert_statement()
        rows = [record.as_row() for record in records]
        async with self.transaction() as connection:
            await connection.execute(statement, rows)
        logger.debug("chat_logs_upserted", count=len(rows))

    async def insert_daily_record(self, record: DailyVitalRecord) -> None:
        async with self.transaction() as connection:
            await connection.execute(daily_records.insert().values(**record.as_row()))

    # -- staff ----------------------------------------------------------------

    async def list_staff(self) -> list[Staff]:
        query = select(staff).order_by(staff.c.id.asc())
        return [Staff.model_validate(row) for row in await self._fetch(query)]

    async def get_staff(self, staff_id: str) -> Staff | None:
        rows = await self._fetch(select(staff).where(staff.c.id == staff_id))
        return Staff.model_validate(rows[0]) if rows else None


__all__ = ["PostgresCareStore", "chat_log_upsert_statement"]
