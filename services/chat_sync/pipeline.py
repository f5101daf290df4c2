"""Ingestion pipeline turning raw chat entries into stored chat log records."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence, Union

from repositories import CareStore, StorageError
from shared.http.errors import ChatLogUpsertError, MalformedEnvelopeError
from shared.models import ChatLogRecord, RawChatEntry, clean_optional_text
from shared.observability.logger import get_logger

from .categories import classify_message
from .name_map import NameMapCache, lookup
from .normalization import to_jst_timestamp

__all__ = [
    "Accepted",
    "DroppedInvalid",
    "EntryOutcome",
    "IngestionPipeline",
    "SkippedUnresolved",
    "SyncReport",
    "UNNAMED_RESIDENT",
    "classify_entry",
    "decode_envelope",
    "parse_envelope",
    "reduce_outcomes",
]

logger = get_logger(__name__)

UNNAMED_RESIDENT = "(empty)"
SYNC_COMPLETE_MESSAGE = "Sync complete"
EMPTY_BATCH_MESSAGE = "No entries to process"


@dataclass(frozen=True)
class Accepted:
    record: ChatLogRecord


@dataclass(frozen=True)
class DroppedInvalid:
    """Entry rejected silently: missing id or message, or unusable timestamp."""

    reason: str
    message_id: str | None = None


@dataclass(frozen=True)
class SkippedUnresolved:
    """Entry whose resident name did not resolve; reported back to the caller."""

    name: str
    message_id: str | None = None


EntryOutcome = Union[Accepted, DroppedInvalid, SkippedUnresolved]


@dataclass(frozen=True)
class SyncReport:
    """Summary returned for every ingestion call."""

    inserted: int = 0
    skipped_names: tuple[str, ...] = ()
    dropped: int = 0
    received: int = 0

    @property
    def skipped(self) -> int:
        return len(self.skipped_names)

    @property
    def message(self) -> str:
        return EMPTY_BATCH_MESSAGE if self.received == 0 else SYNC_COMPLETE_MESSAGE

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "received": self.received,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "dropped": self.dropped,
        }


def decode_envelope(body: bytes | str) -> Any:
    """Parse a raw request body, raising :class:`MalformedEnvelopeError`."""

    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedEnvelopeError("Request body is not valid JSON.") from exc


def parse_envelope(payload: Any) -> list[RawChatEntry]:
    """Return the entries carried by a JSON object or an array of objects."""

    if isinstance(payload, Mapping):
        items: list[Any] = [payload]
    elif isinstance(payload, list):
        items = payload
    else:
        raise MalformedEnvelopeError("Body must be a JSON object or an array of objects.")

    if not all(isinstance(item, Mapping) for item in items):
        raise MalformedEnvelopeError("Every array element must be a JSON object.")
    return [RawChatEntry.model_validate(item) for item in items]


def classify_entry(entry: RawChatEntry, name_map: Mapping[str, str]) -> EntryOutcome:
    """Decide what happens to a single entry given the current name map."""

    message_id = clean_optional_text(entry.message_id)
    if message_id is None:
        return DroppedInvalid(reason="missing_message_id")
    message = clean_optional_text(entry.message)
    if message is None:
        return DroppedInvalid(reason="missing_message", message_id=message_id)

    send_time = to_jst_timestamp(entry.datetime_text)
    if send_time is None:
        return DroppedInvalid(reason="invalid_datetime", message_id=message_id)

    user_id = lookup(name_map, entry.resident_name)
    if user_id is None:
        return SkippedUnresolved(
            name=entry.resident_name or UNNAMED_RESIDENT, message_id=message_id
        )

    record = ChatLogRecord(
        id=message_id,
        user_id=user_id,
        staff_name=clean_optional_text(entry.staff_name),
        message=message,
        send_time=datetime.fromisoformat(send_time),
        category_tag=classify_message(message),
    )
    return Accepted(record=record)


def reduce_outcomes(
    outcomes: Iterable[EntryOutcome],
) -> tuple[list[ChatLogRecord], SyncReport]:
    """Fold per-entry outcomes into the records to write and the batch report.

    Records sharing an id collapse to the last occurrence since one upsert
    statement cannot touch the same row twice. Skipped names keep input order.
    """

    records: dict[str, ChatLogRecord] = {}
    skipped: list[str] = []
    dropped = 0
    received = 0
    for outcome in outcomes:
        received += 1
        if isinstance(outcome, Accepted):
            records.pop(outcome.record.id, None)
            records[outcome.record.id] = outcome.record
        elif isinstance(outcome, SkippedUnresolved):
            skipped.append(outcome.name)
        else:
            dropped += 1

    report = SyncReport(
        inserted=len(records),
        skipped_names=tuple(skipped),
        dropped=dropped,
        received=received,
    )
    return list(records.values()), report


@dataclass
class IngestionPipeline:
    """Resolve, classify and upsert a batch of chat entries."""

    store: CareStore
    name_map: NameMapCache

    async def evaluate(self, entries: Sequence[RawChatEntry]) -> list[EntryOutcome]:
        """Return per-entry outcomes without writing anything."""

        if not entries:
            return []
        name_map = await self.name_map.resolve()
        return [classify_entry(entry, name_map) for entry in entries]

    async def ingest(self, entries: Sequence[RawChatEntry]) -> SyncReport:
        """Store every accepted entry in one upsert and report the outcome.

        An empty batch succeeds without reading the roster. Roster and upsert
        failures abort the whole batch; nothing is retried.
        """

        if not entries:
            logger.info("chat_sync_empty_batch")
            return SyncReport()

        outcomes = await self.evaluate(entries)
        records, report = reduce_outcomes(outcomes)

        if records:
            try:
                await self.store.upsert_chat_logs(records)
            except StorageError as exc:
                logger.error(
                    "chat_log_upsert_failed",
                    error=str(exc),
                    records=len(records),
                )
                raise ChatLogUpsertError(str(exc), record_count=len(records)) from exc

        logger.info("chat_sync_completed", **report.as_log_fields())
        return report
