"""Merge vital records and chat logs into one chronological stream."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from shared.models import (
    JST,
    CategoryTag,
    ChatLogItem,
    ChatLogRecord,
    DailyRecordItem,
    DailyVitalRecord,
    TimelineItem,
)

__all__ = [
    "chat_log_category",
    "filter_timeline",
    "matches_category",
    "merge_timeline",
    "timeline_sort_key",
    "vital_categories",
]


def _as_datetime(value: datetime | str | None) -> datetime | None:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value.strip():
        try:
            moment = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=JST)
    return moment


def timeline_sort_key(item: DailyRecordItem | ChatLogItem) -> tuple[int, float]:
    """Return a key placing items without a usable time below every timed item."""

    moment = _as_datetime(item.time)
    if moment is None:
        return (0, 0.0)
    return (1, moment.timestamp())


def merge_timeline(
    vitals: Iterable[DailyVitalRecord],
    chat_logs: Iterable[ChatLogRecord],
    *,
    limit: int | None = None,
) -> list[TimelineItem]:
    """Return vitals and chat logs as timeline items, newest first.

    Ties keep input order with vitals ahead of chat logs. ``limit`` truncates
    the merged sequence after sorting.
    """

    items: list[DailyRecordItem | ChatLogItem] = [
        DailyRecordItem(time=record.record_time, data=record) for record in vitals
    ]
    items.extend(ChatLogItem(time=log.send_time, data=log) for log in chat_logs)
    # ``sorted`` stays stable with ``reverse=True``.
    ordered = sorted(items, key=timeline_sort_key, reverse=True)
    if limit is not None:
        ordered = ordered[: max(limit, 0)]
    return ordered


def _has_text(value: str | None) -> bool:
    return bool(value and value.strip())


def vital_categories(record: DailyVitalRecord) -> frozenset[CategoryTag]:
    """Return the care categories a vital record covers.

    Measurements count as ``体調``, urine notes as ``排泄`` and meal notes as
    ``食事``. A record with none of these is ``その他``; vitals never carry
    ``睡眠``.
    """

    categories: set[CategoryTag] = set()
    measurements = (record.body_temp, record.bp_high, record.pulse, record.spo2)
    if any(value is not None for value in measurements):
        categories.add(CategoryTag.CONDITION)
    if _has_text(record.excretion_urine):
        categories.add(CategoryTag.EXCRETION)
    if _has_text(record.meal_amount):
        categories.add(CategoryTag.MEAL)
    return frozenset(categories or {CategoryTag.OTHER})


def chat_log_category(log: ChatLogRecord) -> str:
    """Return the category label of ``log``; untagged logs are ``その他``."""

    tag = log.category_tag
    if isinstance(tag, CategoryTag):
        return tag.value
    return tag if _has_text(tag) else CategoryTag.OTHER.value


def matches_category(item: DailyRecordItem | ChatLogItem, category: CategoryTag | None) -> bool:
    """Return whether ``item`` belongs under ``category``; ``None`` matches everything."""

    if category is None:
        return True
    if isinstance(item, ChatLogItem):
        return chat_log_category(item.data) == category.value
    return category in vital_categories(item.data)


def filter_timeline(
    items: Iterable[DailyRecordItem | ChatLogItem], category: CategoryTag | None
) -> list[TimelineItem]:
    return [item for item in items if matches_category(item, category)]
