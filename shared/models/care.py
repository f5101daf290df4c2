"""Care record data models shared by the chat sync and dashboard services."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Facility civil time. Every timestamp without an explicit offset is read in
# this zone.
JST = timezone(timedelta(hours=9), name="JST")


def to_camel(value: str) -> str:
    """Convert ``snake_case`` ``value`` into ``camelCase`` for JSON aliases."""

    first, *rest = value.split("_")
    return first + "".join(token.capitalize() for token in rest)


def clean_optional_text(value: Any) -> str | None:
    """Trim ``value`` and return ``None`` when nothing is left.

    Numbers and booleans arriving from loosely typed JSON are accepted as
    their string form; nested structures are not text and become ``None``.
    """

    if value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


# ---------------------------------------------------------------------------
# Residents & staff
# ---------------------------------------------------------------------------


class ResidentStatus(str, Enum):
    """Occupancy states recorded on the facility roster."""

    OCCUPIED = "occupied"
    HOSPITALIZED = "hospitalized"
    DISCHARGED = "discharged"
    VACANT = "vacant"


class ResidentSummary(BaseModel):
    """Row shown in the resident list."""

    id: str
    name: str
    building_room: str | None = None
    status: ResidentStatus | str | None = None

    model_config = ConfigDict(from_attributes=True)


class ResidentProfile(BaseModel):
    """Profile block of the resident detail view."""

    id: str
    name: str
    gender: str | None = None
    birth_date: date | None = None
    building_room: str | None = None
    care_level: str | None = None
    primary_doctor: str | None = None
    emergency_contact: str | None = None

    model_config = ConfigDict(from_attributes=True)


class RosterEntry(BaseModel):
    """``(id, name)`` pair read when building the resident name map."""

    id: str | None = None
    name: str | None = None


class MedicalHistory(BaseModel):
    id: int | str
    user_id: str
    disease_name: str | None = None
    onset_date: str | None = None
    hospital: str | None = None


class Medication(BaseModel):
    id: str
    user_id: str
    timing: str | None = None
    medicine_name: str | None = None
    dosage: str | None = None


class Staff(BaseModel):
    """Staff member selectable on the shared-device login screen."""

    id: str
    name: str
    department: str | None = None


class StaffSession(BaseModel):
    """Payload stored in the staff session cookie."""

    id: str
    name: str


# ---------------------------------------------------------------------------
# Chat logs
# ---------------------------------------------------------------------------


class CategoryTag(str, Enum):
    """Care topic attached to a chat-derived record."""

    EXCRETION = "排泄"
    CONDITION = "体調"
    SLEEP = "睡眠"
    MEAL = "食事"
    OTHER = "その他"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class RawChatEntry(BaseModel):
    """Message delivered by the external chat integration before validation."""

    datetime_text: Any = Field(default=None, alias="datetime")
    resident_name: str | None = None
    message: str | None = None
    staff_name: str | None = None
    message_id: str | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("message_id", "message", "staff_name", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)):
            return str(value)
        return None

    @field_validator("resident_name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str | None:
        if isinstance(value, (int, float)):
            return str(value)
        return value if isinstance(value, str) else None


class ChatLogRecord(BaseModel):
    """Chat message linked to a resident, keyed by the external message id."""

    id: str
    user_id: str
    staff_name: str | None = None
    message: str
    send_time: datetime
    category_tag: CategoryTag | str | None = None

    model_config = ConfigDict(from_attributes=True)

    def as_row(self) -> dict[str, Any]:
        """Return the column mapping written by the store."""

        row = self.model_dump()
        if isinstance(self.category_tag, CategoryTag):
            row["category_tag"] = self.category_tag.value
        return row


# ---------------------------------------------------------------------------
# Daily vitals
# ---------------------------------------------------------------------------


class DailyVitalRecord(BaseModel):
    """Vital signs and care notes entered by staff."""

    id: str
    user_id: str
    staff_id: str | None = None
    record_time: datetime
    body_temp: float | None = None
    bp_high: int | None = None
    bp_low: int | None = None
    pulse: int | None = None
    spo2: int | None = None
    excretion_urine: str | None = None
    meal_amount: str | None = None

    model_config = ConfigDict(from_attributes=True)

    def as_row(self) -> dict[str, Any]:
        return self.model_dump()


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class DailyVitalCreate(BaseModel):
    """Form payload used to add a daily vital record."""

    record_time: datetime
    body_temp: float | None = Field(default=None, ge=30, le=45)
    bp_high: int | None = Field(default=None, ge=0, le=300)
    bp_low: int | None = Field(default=None, ge=0, le=300)
    pulse: int | None = Field(default=None, ge=0, le=300)
    spo2: int | None = Field(default=None, ge=0, le=100)
    excretion_urine: str | None = None
    meal_amount: str | None = None

    @field_validator("body_temp", "bp_high", "bp_low", "pulse", "spo2", mode="before")
    @classmethod
    def _empty_numeric(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("excretion_urine", "meal_amount", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str | None:
        return clean_optional_text(value)

    @field_validator("record_time")
    @classmethod
    def _assume_facility_time(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=JST)
        return value


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


class DailyRecordItem(BaseModel):
    type: Literal["daily_record"] = "daily_record"
    time: datetime | str | None
    data: DailyVitalRecord


class ChatLogItem(BaseModel):
    type: Literal["chat_log"] = "chat_log"
    time: datetime | str | None
    data: ChatLogRecord


TimelineItem = Annotated[Union[DailyRecordItem, ChatLogItem], Field(discriminator="type")]


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
