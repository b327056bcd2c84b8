"""Provider response cache with first-class negative entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final

from bibresolve.cache.client import KeyValueStore
from bibresolve.core.exceptions import StoreError
from bibresolve.core.types import CacheStrategy

logger = logging.getLogger(__name__)


class _Absent:
    """Marker for a confirmed-absent response."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Final = _Absent()

# Stored in place of a payload for negative entries.
ABSENT_MARKER: Final = {"__absent__": True}


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache read: a miss, a hit with a value, or a hit on absence."""

    hit: bool
    value: Any = None
    absent: bool = False

    @classmethod
    def miss(cls) -> CacheLookup:
        return cls(hit=False)

    @classmethod
    def found(cls, value: Any) -> CacheLookup:
        return cls(hit=True, value=value)

    @classmethod
    def confirmed_absent(cls) -> CacheLookup:
        return cls(hit=True, absent=True)


class ResponseCache:
    """
    Caches provider responses keyed by provider, operation and identifier.

    The cache never raises for store problems: a failed read is a miss and a
    failed write is skipped, both logged at WARNING.
    """

    def __init__(
        self,
        store: KeyValueStore,
        strategy: CacheStrategy = CacheStrategy.READ_WRITE,
    ) -> None:
        self._store = store
        self.strategy = strategy

    @property
    def can_read(self) -> bool:
        return self.strategy in (CacheStrategy.READ_WRITE, CacheStrategy.READ_ONLY)

    @property
    def can_write(self) -> bool:
        return self.strategy in (CacheStrategy.READ_WRITE, CacheStrategy.WRITE_ONLY)

    async def get(self, key: str) -> CacheLookup:
        """Look up a cached response."""
        if not self.can_read:
            return CacheLookup.miss()

        try:
            raw = await self._store.get(key)
        except StoreError as e:
            logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
            return CacheLookup.miss()

        if raw is None:
            return CacheLookup.miss()
        if raw == ABSENT_MARKER:
            return CacheLookup.confirmed_absent()
        return CacheLookup.found(raw)

    async def put(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store a response. Pass ABSENT (or None) to record a confirmed absence.

        Returns True when the entry was written.
        """
        if not self.can_write:
            return False

        payload = ABSENT_MARKER if value is None or value is ABSENT else value
        try:
            await self._store.set(key, payload, ttl=ttl)
        except StoreError as e:
            logger.warning(f"Cache write skipped for {key}: {e}")
            return False
        return True

    async def invalidate(self, key: str) -> None:
        """Drop an entry, ignoring store failures."""
        try:
            await self._store.delete(key)
        except StoreError as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")
