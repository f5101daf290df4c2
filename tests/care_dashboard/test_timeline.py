"""Tests for merging vitals and chat logs into one timeline."""

from __future__ import annotations

from datetime import datetime

import pytest

from services.care_dashboard.timeline import (
    chat_log_category,
    filter_timeline,
    merge_timeline,
    timeline_sort_key,
    vital_categories,
)
from shared.models import JST, CategoryTag, ChatLogRecord, DailyRecordItem, DailyVitalRecord


def _vital(record_id: str, when: datetime) -> DailyVitalRecord:
    return DailyVitalRecord(id=record_id, user_id="u1", record_time=when)


def _chat(record_id: str, when: datetime) -> ChatLogRecord:
    return ChatLogRecord(id=record_id, user_id="u1", message="note", send_time=when)


def test_items_are_ordered_newest_first() -> None:
    timeline = merge_timeline(
        [_vital("v-10", datetime(2024, 1, 5, 10, 0, tzinfo=JST))],
        [
            _chat("c-09", datetime(2024, 1, 5, 9, 0, tzinfo=JST)),
            _chat("c-11", datetime(2024, 1, 5, 11, 0, tzinfo=JST)),
        ],
    )

    assert [(item.type, item.data.id) for item in timeline] == [
        ("chat_log", "c-11"),
        ("daily_record", "v-10"),
        ("chat_log", "c-09"),
    ]


def test_ties_keep_vitals_ahead_of_chat_logs() -> None:
    moment = datetime(2024, 1, 5, 10, 0, tzinfo=JST)

    timeline = merge_timeline([_vital("v", moment)], [_chat("c", moment)])

    assert [item.type for item in timeline] == ["daily_record", "chat_log"]


def test_limit_truncates_after_sorting() -> None:
    vitals = [_vital(f"v-{hour}", datetime(2024, 1, 5, hour, tzinfo=JST)) for hour in (8, 12)]
    chats = [_chat(f"c-{hour}", datetime(2024, 1, 5, hour, tzinfo=JST)) for hour in (9, 13)]

    timeline = merge_timeline(vitals, chats, limit=2)

    assert [item.data.id for item in timeline] == ["c-13", "v-12"]
    assert merge_timeline(vitals, chats, limit=0) == []


def test_naive_times_are_read_as_facility_time() -> None:
    timeline = merge_timeline(
        [_vital("naive", datetime(2024, 1, 5, 10, 0))],
        [
            _chat("later", datetime(2024, 1, 5, 10, 30, tzinfo=JST)),
            _chat("earlier", datetime.fromisoformat("2024-01-05T00:30:00+00:00")),
        ],
    )

    assert [item.data.id for item in timeline] == ["later", "naive", "earlier"]


def test_unusable_time_sorts_last() -> None:
    record = _vital("v", datetime(2024, 1, 5, 10, 0, tzinfo=JST))

    assert timeline_sort_key(DailyRecordItem(time="not a time", data=record)) == (0, 0.0)
    assert timeline_sort_key(DailyRecordItem(time=None, data=record)) == (0, 0.0)
    assert timeline_sort_key(DailyRecordItem(time="2024-01-05T10:00:00", data=record))[0] == 1


def test_empty_inputs_give_empty_timeline() -> None:
    assert merge_timeline([], []) == []


MOMENT = datetime(2024, 1, 5, 10, 0, tzinfo=JST)


@pytest.mark.parametrize(
    "fields, expected",
    [
        ({"body_temp": 36.5}, {CategoryTag.CONDITION}),
        ({"bp_high": 130}, {CategoryTag.CONDITION}),
        ({"pulse": 70}, {CategoryTag.CONDITION}),
        ({"spo2": 97}, {CategoryTag.CONDITION}),
        ({"excretion_urine": "あり"}, {CategoryTag.EXCRETION}),
        ({"meal_amount": "全量"}, {CategoryTag.MEAL}),
        (
            {"body_temp": 37.2, "excretion_urine": "少量", "meal_amount": "半量"},
            {CategoryTag.CONDITION, CategoryTag.EXCRETION, CategoryTag.MEAL},
        ),
        ({}, {CategoryTag.OTHER}),
        ({"excretion_urine": "", "meal_amount": "  "}, {CategoryTag.OTHER}),
    ],
)
def test_vital_categories_follow_filled_fields(fields: dict[str, object], expected: set[CategoryTag]) -> None:
    record = DailyVitalRecord(id="v", user_id="u1", record_time=MOMENT, **fields)

    assert vital_categories(record) == expected
    assert CategoryTag.SLEEP not in vital_categories(record)


@pytest.mark.parametrize(
    "tag, expected",
    [
        (CategoryTag.SLEEP, "睡眠"),
        ("排泄", "排泄"),
        (None, "その他"),
        ("", "その他"),
        (CategoryTag.OTHER, "その他"),
    ],
)
def test_chat_log_category_defaults_to_other(tag: object, expected: str) -> None:
    log = ChatLogRecord(id="c", user_id="u1", message="note", send_time=MOMENT, category_tag=tag)

    assert chat_log_category(log) == expected


def test_filter_timeline_by_category() -> None:
    timeline = merge_timeline(
        [
            DailyVitalRecord(id="v-temp", user_id="u1", record_time=MOMENT, body_temp=36.4),
            DailyVitalRecord(id="v-meal", user_id="u1", record_time=MOMENT, meal_amount="全量"),
            DailyVitalRecord(id="v-empty", user_id="u1", record_time=MOMENT),
        ],
        [
            ChatLogRecord(id="c-sleep", user_id="u1", message="入眠", send_time=MOMENT, category_tag="睡眠"),
            ChatLogRecord(id="c-none", user_id="u1", message="特記なし", send_time=MOMENT),
        ],
    )

    def ids(category: CategoryTag | None) -> list[str]:
        return [item.data.id for item in filter_timeline(timeline, category)]

    assert ids(None) == ["v-temp", "v-meal", "v-empty", "c-sleep", "c-none"]
    assert ids(CategoryTag.CONDITION) == ["v-temp"]
    assert ids(CategoryTag.MEAL) == ["v-meal"]
    assert ids(CategoryTag.SLEEP) == ["c-sleep"]
    assert ids(CategoryTag.OTHER) == ["v-empty", "c-none"]
    assert ids(CategoryTag.EXCRETION) == []
