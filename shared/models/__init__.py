"""Shared pydantic models for the care record services."""

from .care import (
    JST,
    CategoryTag,
    ChatLogItem,
    ChatLogRecord,
    DailyRecordItem,
    DailyVitalCreate,
    DailyVitalRecord,
    MedicalHistory,
    Medication,
    RawChatEntry,
    ResidentProfile,
    ResidentStatus,
    ResidentSummary,
    RosterEntry,
    Staff,
    StaffSession,
    TimelineItem,
    clean_optional_text,
    to_camel,
)

__all__ = [
    "JST",
    "CategoryTag",
    "ChatLogItem",
    "ChatLogRecord",
    "DailyRecordItem",
    "DailyVitalCreate",
    "DailyVitalRecord",
    "MedicalHistory",
    "Medication",
    "RawChatEntry",
    "ResidentProfile",
    "ResidentStatus",
    "ResidentSummary",
    "RosterEntry",
    "Staff",
    "StaffSession",
    "TimelineItem",
    "clean_optional_text",
    "to_camel",
]
