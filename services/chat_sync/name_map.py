"""Resident name map: canonical name key to resident id, cached with a TTL."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from repositories import CareStore, StorageError
from shared.http.errors import NameMapLoadError
from shared.models import RosterEntry
from shared.observability.logger import get_logger

from .normalization import normalize_name

__all__ = [
    "DEFAULT_NAME_MAP_TTL_SECONDS",
    "NameMapCache",
    "NameMapLoadError",
    "NameMapSnapshot",
    "build_name_map",
    "lookup",
]

logger = get_logger(__name__)

DEFAULT_NAME_MAP_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class NameMapSnapshot:
    """Result of turning a roster into name keys."""

    entries: Mapping[str, str]
    ambiguous: frozenset[str]


def build_name_map(roster: Iterable[RosterEntry]) -> NameMapSnapshot:
    """Build the name map from ``roster``.

    Rows without an id or a name are ignored. A key claimed by more than one
    distinct resident id is ambiguous and left out of the map so that neither
    resident is picked by accident.
    """

    claims: dict[str, set[str]] = {}
    for entry in roster:
        if not entry.id or not entry.name:
            continue
        key = normalize_name(entry.name)
        if not key:
            continue
        claims.setdefault(key, set()).add(entry.id)

    entries = {key: next(iter(ids)) for key, ids in claims.items() if len(ids) == 1}
    ambiguous = frozenset(key for key, ids in claims.items() if len(ids) > 1)
    return NameMapSnapshot(entries=MappingProxyType(entries), ambiguous=ambiguous)


def lookup(name_map: Mapping[str, str], name: str | None) -> str | None:
    """Return the resident id for ``name`` or ``None`` when it does not resolve."""

    key = normalize_name(name)
    if not key:
        return None
    return name_map.get(key)


class NameMapCache:
    """Lazily loaded name map owned by the component composing the pipeline.

    The map is reloaded from ``store`` when it is older than ``ttl_seconds``
    according to ``clock``. Concurrent callers share a single reload. A failed
    reload raises :class:`NameMapLoadError` and leaves the previous state
    untouched.
    """

    def __init__(
        self,
        store: CareStore,
        *,
        ttl_seconds: float = DEFAULT_NAME_MAP_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._snapshot: NameMapSnapshot | None = None
        self._loaded_at: float | None = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    @property
    def ambiguous_names(self) -> frozenset[str]:
        """Name keys excluded from the current map because they are shared."""

        return self._snapshot.ambiguous if self._snapshot is not None else frozenset()

    def _is_fresh(self, now: float) -> bool:
        if self._snapshot is None or self._loaded_at is None:
            return False
        return now - self._loaded_at < self._ttl_seconds

    async def resolve(self) -> Mapping[str, str]:
        """Return the current name map, reloading it when stale."""

        if self._snapshot is not None and self._is_fresh(self._clock()):
            return self._snapshot.entries

        async with self._lock:
            if self._snapshot is not None and self._is_fresh(self._clock()):
                return self._snapshot.entries
            snapshot = await self._load()
            self._snapshot = snapshot
            self._loaded_at = self._clock()
            return snapshot.entries

    async def lookup_name(self, name: str | None) -> str | None:
        return lookup(await self.resolve(), name)

    def invalidate(self) -> None:
        """Force the next :meth:`resolve` call to reload the roster."""

        self._loaded_at = None

    async def _load(self) -> NameMapSnapshot:
        try:
            roster = await self._store.fetch_roster()
        except StorageError as exc:
            logger.error("name_map_load_failed", error=str(exc))
            raise NameMapLoadError(str(exc)) from exc

        snapshot = build_name_map(roster)
        if snapshot.ambiguous:
            logger.warning(
                "name_map_ambiguous_names",
                names=sorted(snapshot.ambiguous),
                count=len(snapshot.ambiguous),
            )
        logger.info(
            "name_map_reloaded",
            residents=len(roster),
            entries=len(snapshot.entries),
        )
        return snapshot
