"""Tests for per-entry classification and batch ingestion."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest

from repositories import InMemoryCareStore, StorageError
from services.chat_sync.name_map import NameMapCache
from services.chat_sync.pipeline import (
    Accepted,
    DroppedInvalid,
    IngestionPipeline,
    SkippedUnresolved,
    classify_entry,
    decode_envelope,
    parse_envelope,
    reduce_outcomes,
)
from shared.http.errors import ChatLogUpsertError, MalformedEnvelopeError, NameMapLoadError
from shared.models import CategoryTag, ChatLogRecord, RawChatEntry

JST = timezone(timedelta(hours=9))
NAME_MAP = {"山田太郎": "u1", "ヤマダハナコ": "u2"}


@pytest.fixture
def anyio_backend() -> str:
    """Limit AnyIO-powered tests to the asyncio backend."""

    return "asyncio"


def _entry(**overrides: object) -> RawChatEntry:
    payload: dict[str, object] = {
        "datetime": "2024-01-05 09:30",
        "resident_name": "山田 太郎",
        "message": "体温37.8度",
        "staff_name": "  鈴木  ",
        "message_id": "m-1",
    }
    payload.update(overrides)
    return RawChatEntry.model_validate(payload)


def _residents() -> list[dict[str, str]]:
    return [
        {"id": "u1", "name": "山田 太郎", "building_room": "A-101"},
        {"id": "u2", "name": "ﾔﾏﾀﾞ ﾊﾅｺ", "building_room": "A-102"},
    ]


class _RecordingStore(InMemoryCareStore):
    def __init__(self, *, fail_roster: bool = False, fail_upsert: bool = False) -> None:
        super().__init__(residents=_residents())
        self.fail_roster = fail_roster
        self.fail_upsert = fail_upsert
        self.roster_reads = 0
        self.upserts: list[Sequence[ChatLogRecord]] = []

    async def fetch_roster(self):
        self.roster_reads += 1
        if self.fail_roster:
            raise StorageError("roster table unavailable")
        return await super().fetch_roster()

    async def upsert_chat_logs(self, records: Sequence[ChatLogRecord]) -> None:
        if self.fail_upsert:
            raise StorageError("deadlock detected")
        self.upserts.append(list(records))
        await super().upsert_chat_logs(records)


def _pipeline(store: InMemoryCareStore) -> IngestionPipeline:
    return IngestionPipeline(store=store, name_map=NameMapCache(store))


def test_classify_entry_builds_record() -> None:
    outcome = classify_entry(_entry(), NAME_MAP)

    assert isinstance(outcome, Accepted)
    record = outcome.record
    assert record.id == "m-1"
    assert record.user_id == "u1"
    assert record.staff_name == "鈴木"
    assert record.message == "体温37.8度"
    assert record.send_time == datetime(2024, 1, 5, 9, 30, tzinfo=JST)
    assert record.send_time.utcoffset() == timedelta(hours=9)
    assert record.category_tag is CategoryTag.CONDITION


def test_classify_entry_trims_identifier_and_message() -> None:
    outcome = classify_entry(_entry(message_id="  m-9 ", message=" 排尿あり "), NAME_MAP)

    assert isinstance(outcome, Accepted)
    assert outcome.record.id == "m-9"
    assert outcome.record.message == "排尿あり"
    assert outcome.record.category_tag is CategoryTag.EXCRETION


@pytest.mark.parametrize("staff_name", ["", "   ", None])
def test_blank_staff_name_becomes_none(staff_name: str | None) -> None:
    outcome = classify_entry(_entry(staff_name=staff_name), NAME_MAP)

    assert isinstance(outcome, Accepted)
    assert outcome.record.staff_name is None


@pytest.mark.parametrize(
    "overrides, reason",
    [
        ({"message_id": ""}, "missing_message_id"),
        ({"message_id": "   "}, "missing_message_id"),
        ({"message_id": None}, "missing_message_id"),
        ({"message": ""}, "missing_message"),
        ({"message": " 　 "}, "missing_message"),
        ({"datetime": "yesterday"}, "invalid_datetime"),
        ({"datetime": ""}, "invalid_datetime"),
        ({"datetime": None}, "invalid_datetime"),
    ],
)
def test_invalid_entries_are_dropped(overrides: dict[str, object], reason: str) -> None:
    outcome = classify_entry(_entry(**overrides), NAME_MAP)

    assert isinstance(outcome, DroppedInvalid)
    assert outcome.reason == reason


def test_invalid_entry_is_dropped_before_name_resolution() -> None:
    outcome = classify_entry(_entry(message="", resident_name="誰か"), NAME_MAP)

    assert isinstance(outcome, DroppedInvalid)


def test_unresolved_name_keeps_original_spelling() -> None:
    outcome = classify_entry(_entry(resident_name="ｻﾄｳ  ｼﾞﾛｳ"), NAME_MAP)

    assert outcome == SkippedUnresolved(name="ｻﾄｳ  ｼﾞﾛｳ", message_id="m-1")


@pytest.mark.parametrize("resident_name", ["", None])
def test_missing_name_is_reported_as_empty(resident_name: str | None) -> None:
    outcome = classify_entry(_entry(resident_name=resident_name), NAME_MAP)

    assert isinstance(outcome, SkippedUnresolved)
    assert outcome.name == "(empty)"


def test_half_width_name_resolves() -> None:
    outcome = classify_entry(_entry(resident_name="ﾔﾏﾀﾞ ﾊﾅｺ"), NAME_MAP)

    assert isinstance(outcome, Accepted)
    assert outcome.record.user_id == "u2"


def test_reduce_outcomes_counts_and_orders() -> None:
    outcomes = [
        classify_entry(_entry(message_id="a"), NAME_MAP),
        classify_entry(_entry(message_id="b", resident_name="不明 一"), NAME_MAP),
        classify_entry(_entry(message_id=""), NAME_MAP),
        classify_entry(_entry(message_id="c", resident_name="不明 二"), NAME_MAP),
    ]

    records, report = reduce_outcomes(outcomes)

    assert [record.id for record in records] == ["a"]
    assert report.inserted == 1
    assert report.skipped == 2
    assert report.skipped_names == ("不明 一", "不明 二")
    assert report.dropped == 1
    assert report.received == 4
    assert report.message == "Sync complete"


def test_reduce_outcomes_collapses_duplicate_ids_to_last() -> None:
    outcomes = [
        classify_entry(_entry(message_id="a", message="first"), NAME_MAP),
        classify_entry(_entry(message_id="a", message="second"), NAME_MAP),
    ]

    records, report = reduce_outcomes(outcomes)

    assert [record.message for record in records] == ["second"]
    assert report.inserted == 1


def test_parse_envelope_accepts_object_or_array() -> None:
    single = parse_envelope({"message_id": "m-1", "message": "hi"})
    many = parse_envelope([{"message_id": "m-1"}, {"message_id": "m-2"}])

    assert [entry.message_id for entry in single] == ["m-1"]
    assert [entry.message_id for entry in many] == ["m-1", "m-2"]
    assert parse_envelope([]) == []


def test_parse_envelope_coerces_scalars_and_ignores_unknown_keys() -> None:
    (entry,) = parse_envelope(
        {"message_id": 12345, "message": {"nested": True}, "room": "A-101"}
    )

    assert entry.message_id == "12345"
    assert entry.message is None


@pytest.mark.parametrize("payload", ["text", 42, None, [{"message_id": "m"}, "oops"], [[]]])
def test_parse_envelope_rejects_other_shapes(payload: object) -> None:
    with pytest.raises(MalformedEnvelopeError) as excinfo:
        parse_envelope(payload)

    assert excinfo.value.status_code == 400


@pytest.mark.parametrize("body", [b"", b"{not json", b"\xff\xfe"])
def test_decode_envelope_rejects_invalid_json(body: bytes) -> None:
    with pytest.raises(MalformedEnvelopeError):
        decode_envelope(body)


@pytest.mark.anyio
async def test_ingest_reports_inserted_and_skipped() -> None:
    store = _RecordingStore()
    entries = [
        _entry(message_id="m-1"),
        _entry(message_id="m-2", resident_name="存在 しない"),
    ]

    report = await _pipeline(store).ingest(entries)

    assert report.inserted == 1
    assert report.skipped == 1
    assert report.skipped_names == ("存在 しない",)
    assert list(store.chat_logs) == ["m-1"]
    assert len(store.upserts) == 1


@pytest.mark.anyio
async def test_reingest_overwrites_existing_record() -> None:
    store = _RecordingStore()
    pipeline = _pipeline(store)

    first = await pipeline.ingest([_entry(message="体温37.8度")])
    second = await pipeline.ingest([_entry(message="排尿あり", staff_name="佐藤")])

    assert first.inserted == 1
    assert second.inserted == 1
    assert list(store.chat_logs) == ["m-1"]
    stored = store.chat_logs["m-1"]
    assert stored.message == "排尿あり"
    assert stored.staff_name == "佐藤"
    assert stored.category_tag is CategoryTag.EXCRETION


@pytest.mark.anyio
async def test_empty_batch_is_a_no_op() -> None:
    store = _RecordingStore()

    report = await _pipeline(store).ingest([])

    assert report.inserted == 0
    assert report.skipped == 0
    assert report.message == "No entries to process"
    assert store.roster_reads == 0
    assert store.upserts == []


@pytest.mark.anyio
async def test_batch_without_valid_records_skips_upsert() -> None:
    store = _RecordingStore()

    report = await _pipeline(store).ingest([_entry(message_id=""), _entry(resident_name="誰")])

    assert report.inserted == 0
    assert report.skipped_names == ("誰",)
    assert store.upserts == []


@pytest.mark.anyio
async def test_roster_failure_aborts_without_upsert() -> None:
    store = _RecordingStore(fail_roster=True)

    with pytest.raises(NameMapLoadError):
        await _pipeline(store).ingest([_entry()])

    assert store.upserts == []
    assert store.chat_logs == {}


@pytest.mark.anyio
async def test_upsert_failure_is_reported() -> None:
    store = _RecordingStore(fail_upsert=True)

    with pytest.raises(ChatLogUpsertError) as excinfo:
        await _pipeline(store).ingest([_entry(), _entry(message_id="m-2")])

    assert excinfo.value.detail == "Upsert failed: deadlock detected"
    assert excinfo.value.record_count == 2
    assert store.chat_logs == {}


@pytest.mark.anyio
async def test_evaluate_returns_outcomes_without_writing() -> None:
    store = _RecordingStore()

    outcomes = await _pipeline(store).evaluate([_entry(), _entry(resident_name="誰")])

    assert isinstance(outcomes[0], Accepted)
    assert isinstance(outcomes[1], SkippedUnresolved)
    assert store.upserts == []
