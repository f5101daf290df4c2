"""Storage backends for the care record services."""

from .care_store import CareStore, StorageError
from .factory import build_store
from .memory import FixtureLoadError, InMemoryCareStore
from .postgres import PostgresCareStore

__all__ = [
    "CareStore",
    "FixtureLoadError",
    "InMemoryCareStore",
    "PostgresCareStore",
    "StorageError",
    "build_store",
]
