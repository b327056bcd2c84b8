"""Unit test fixtures: in-memory store and HTTP mocking."""

from __future__ import annotations

import json
from typing import Any

import pytest
import respx

from bibresolve.config import BibResolveSettings
from bibresolve.context import ServiceContext
from bibresolve.core.exceptions import StoreError

# ============================================================================
# Shared Store Double
# ============================================================================


class InMemoryStore:
    """
    Dict-backed stand-in for the Redis store.

    Values go through JSON like they do in Redis. Flip ``fail_reads`` or
    ``fail_writes`` to simulate an unreachable store.
    """

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail_reads = False
        self.fail_writes = False

    def _check(self, writing: bool) -> None:
        if (writing and self.fail_writes) or (not writing and self.fail_reads):
            raise StoreError("store unavailable")

    async def get(self, key: str) -> Any | None:
        self._check(writing=False)
        raw = self.data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int = 3600) -> None:
        self._check(writing=True)
        self.data[key] = json.dumps(value, default=str)
        self.ttls[key] = ttl

    async def delete(self, key: str) -> bool:
        self._check(writing=True)
        self.ttls.pop(key, None)
        return self.data.pop(key, None) is not None

    async def incr_by(self, key: str, amount: int, ttl: int | None = None) -> int:
        self._check(writing=True)
        value = int(json.loads(self.data.get(key, "0"))) + amount
        self.data[key] = json.dumps(value)
        if ttl:
            self.ttls[key] = ttl
        return value

    def fail(self) -> None:
        self.fail_reads = True
        self.fail_writes = True


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def context(settings: BibResolveSettings, store: InMemoryStore) -> ServiceContext:
    """Service context over the in-memory store with the ISBNdb quota wired."""
    return ServiceContext.from_settings(settings, store)


# ============================================================================
# HTTP Mocking Fixtures
# ============================================================================


@pytest.fixture
def respx_mock():
    """Provide a respx mock router for HTTP mocking.

    Unmatched requests fail the test, so nothing reaches the network.
    """
    with respx.mock(assert_all_called=False) as router:
        yield router

