"""Select the care record store configured for the running service."""

from __future__ import annotations

from shared.config.settings import DatabaseSettings
from shared.observability.logger import get_logger

from .care_store import CareStore
from .memory import InMemoryCareStore
from .postgres import PostgresCareStore

logger = get_logger(__name__)


def build_store(settings: DatabaseSettings) -> CareStore:
    """Return the store named by ``settings.backend``."""

    if settings.backend == "memory":
        if settings.fixture_path:
            logger.info("care_store_selected", backend="memory", fixture=settings.fixture_path)
            return InMemoryCareStore.from_fixture(settings.fixture_path)
        logger.info("care_store_selected", backend="memory")
        return InMemoryCareStore()

    logger.info("care_store_selected", backend="postgres")
    return PostgresCareStore(settings.url)


__all__ = ["build_store"]
