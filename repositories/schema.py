"""SQLAlchemy Core table definitions for the care record store."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    Table,
    Text,
)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("gender", Text),
    Column("birth_date", Date),
    Column("building_room", Text),
    Column("status", Text),
    Column("care_level", Text),
    Column("primary_doctor", Text),
    Column("emergency_contact", Text),
)

staff = Table(
    "staff",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("department", Text),
)

medical_histories = Table(
    "medical_histories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Text, ForeignKey("users.id"), nullable=False, index=True),
    Column("disease_name", Text),
    Column("onset_date", Text),
    Column("hospital", Text),
)

medications = Table(
    "medications",
    metadata,
    Column("id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("users.id"), nullable=False, index=True),
    Column("timing", Text),
    Column("medicine_name", Text),
    Column("dosage", Text),
)

daily_records = Table(
    "daily_records",
    metadata,
    Column("id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("users.id"), nullable=False, index=True),
    Column("staff_id", Text),
    Column("record_time", DateTime(timezone=True), nullable=False, index=True),
    Column("body_temp", Float),
    Column("bp_high", Integer),
    Column("bp_low", Integer),
    Column("pulse", Integer),
    Column("spo2", Integer),
    Column("excretion_urine", Text),
    Column("meal_amount", Text),
)

# ``id`` is the external message id and the idempotency key for upserts.
chat_logs = Table(
    "chat_logs",
    metadata,
    Column("id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("users.id"), nullable=False, index=True),
    Column("staff_name", Text),
    Column("message", Text, nullable=False),
    Column("send_time", DateTime(timezone=True), nullable=False, index=True),
    Column("category_tag", Text),
)


__all__ = [
    "chat_logs",
    "daily_records",
    "medical_histories",
    "medications",
    "metadata",
    "staff",
    "users",
]
