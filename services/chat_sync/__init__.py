"""Inbound chat message normalisation and reconciliation."""

from pathlib import Path

from dotenv import load_dotenv

from .categories import DEFAULT_CATEGORY_RULES, CategoryRule, classify_message
from .name_map import NameMapCache, build_name_map, lookup
from .normalization import normalize_name, to_jst_timestamp
from .pipeline import (
    Accepted,
    DroppedInvalid,
    EntryOutcome,
    IngestionPipeline,
    SkippedUnresolved,
    SyncReport,
    classify_entry,
    decode_envelope,
    parse_envelope,
    reduce_outcomes,
)

__all__ = [
    "__version__",
    "Accepted",
    "CategoryRule",
    "DEFAULT_CATEGORY_RULES",
    "DroppedInvalid",
    "EntryOutcome",
    "IngestionPipeline",
    "NameMapCache",
    "SkippedUnresolved",
    "SyncReport",
    "build_name_map",
    "classify_entry",
    "classify_message",
    "decode_envelope",
    "lookup",
    "normalize_name",
    "parse_envelope",
    "reduce_outcomes",
    "to_jst_timestamp",
]

__version__ = "0.1.0"

load_dotenv(Path(__file__).resolve().parents[2] / ".env", override=False)
