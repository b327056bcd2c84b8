"""Tests for the orchestrator."""

from __future__ import annotations

import asyncio
from typing import Any, ClassVar

import pytest

from bibresolve.core.exceptions import (
    ProviderUnavailableError,
    QuotaExceededError,
)
from bibresolve.core.models import BookMetadata, CoverResult, ISBNResolution
from bibresolve.core.types import AttemptStatus, Capability, CoverSize, ProviderClass, ResolutionMode
from bibresolve.resolution.base import BaseProvider
from bibresolve.resolution.chain import Orchestrator, is_present
from bibresolve.resolution.registry import ProviderRegistry

# ============================================================================
# Stub Provider for Testing
# ============================================================================


class StubProvider(BaseProvider):
    """Provider whose answer, failure, latency and availability are set per instance."""

    NAME: ClassVar[str] = "stub"
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.FREE
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({
        Capability.RESOLVE_ISBN,
        Capability.FETCH_METADATA,
        Capability.FETCH_COVER,
    })

    def __init__(
        self,
        context,
        name: str,
        *,
        provider_class: ProviderClass = ProviderClass.FREE,
        result: Any = None,
        error: Exception | None = None,
        delay: float = 0.0,
        available: bool = True,
    ) -> None:
        super().__init__(context)
        self._name = name
        self._provider_class = provider_class
        self.result = result
        self.error = error
        self.delay = delay
        self.available = available
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def provider_class(self) -> ProviderClass:
        return self._provider_class

    async def is_available(self) -> bool:
        return self.available

    async def _answer(self) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result

    async def resolve_isbn(self, title: str, author: str = "") -> ISBNResolution | None:
        return await self._answer()

    async def fetch_metadata(self, isbn: str) -> BookMetadata | None:
        return await self._answer()

    async def fetch_cover(self, isbn: str, size: CoverSize = CoverSize.LARGE) -> CoverResult | None:
        return await self._answer()


def resolution(source: str, confidence: int) -> ISBNResolution:
    return ISBNResolution(isbn="9780451524935", source=source, confidence=confidence)


def cover(source: str) -> CoverResult:
    return CoverResult(url=f"https://img.test/{source}.jpg", source=source, confidence=70)


def orchestrator_for(*providers: StubProvider, **kwargs: Any) -> Orchestrator:
    registry = ProviderRegistry()
    registry.register_all(providers)
    return Orchestrator(registry, **kwargs)


# ============================================================================
# First Match Tests
# ============================================================================


class TestFirstMatch:
    """Tests for sequential first-match resolution."""

    async def test_falls_through_to_next_provider(self, context):
        a = StubProvider(context, "a")
        b = StubProvider(context, "b", result=cover("b"))
        c = StubProvider(context, "c", result=cover("c"))

        outcome = await orchestrator_for(a, b, c).resolve(Capability.FETCH_COVER, "9780451524935")

        assert outcome.source == "b"
        assert [x.status for x in outcome.attempts] == [
            AttemptStatus.NOT_FOUND,
            AttemptStatus.SUCCESS,
        ]
        assert c.calls == 0

    async def test_error_contained(self, context):
        a = StubProvider(context, "a", error=ProviderUnavailableError("down", source="a"))
        b = StubProvider(context, "b", result=cover("b"))

        outcome = await orchestrator_for(a, b).resolve(Capability.FETCH_COVER, "9780451524935")

        assert outcome.source == "b"
        assert outcome.attempts[0].status == AttemptStatus.ERROR
        assert outcome.attempts[0].error == "down"

    async def test_unexpected_exception_contained(self, context):
        a = StubProvider(context, "a", error=KeyError("volumeInfo"))

        outcome = await orchestrator_for(a).resolve(Capability.FETCH_COVER, "9780451524935")

        assert outcome.found is False
        assert outcome.attempts[0].status == AttemptStatus.ERROR

    async def test_timeout(self, context):
        slow = StubProvider(context, "slow", result=cover("slow"), delay=1.0)
        fast = StubProvider(context, "fast", result=cover("fast"))

        outcome = await orchestrator_for(slow, fast, provider_timeout=0.01).resolve(
            Capability.FETCH_COVER, "9780451524935"
        )

        assert outcome.source == "fast"
        assert outcome.attempts[0].status == AttemptStatus.TIMEOUT

    async def test_quota_denial_is_a_skip(self, context):
        paid = StubProvider(
            context, "paid", error=QuotaExceededError("quota closed", source="paid")
        )

        outcome = await orchestrator_for(paid).resolve(Capability.FETCH_COVER, "9780451524935")

        assert outcome.attempts[0].status == AttemptStatus.SKIPPED
        assert outcome.providers_tried == []

    async def test_unavailable_provider_never_called(self, context):
        a = StubProvider(context, "a", result=cover("a"), available=False)
        b = StubProvider(context, "b", result=cover("b"))

        outcome = await orchestrator_for(a, b).resolve(Capability.FETCH_COVER, "9780451524935")

        assert outcome.source == "b"
        assert a.calls == 0
        assert outcome.attempts[0].provider == "a"
        assert outcome.attempts[0].status == AttemptStatus.SKIPPED

    async def test_exhausted_chain(self, context):
        outcome = await orchestrator_for(StubProvider(context, "a")).resolve(
            Capability.FETCH_COVER, "9780451524935"
        )
        assert outcome.found is False
        assert outcome.results == []

    async def test_no_providers(self, context):
        outcome = await orchestrator_for().resolve(Capability.FETCH_COVER, "9780451524935")
        assert outcome.found is False
        assert outcome.attempts == []

    async def test_paid_tried_after_free(self, context):
        paid = StubProvider(context, "paid", provider_class=ProviderClass.PAID, result=cover("paid"))
        free = StubProvider(context, "free", result=cover("free"))

        outcome = await orchestrator_for(paid, free).resolve(Capability.FETCH_COVER, "9780451524935")

        assert outcome.source == "free"
        assert paid.calls == 0

    async def test_provider_order(self, context):
        a = StubProvider(context, "a", result=cover("a"))
        b = StubProvider(context, "b", result=cover("b"))

        outcome = await orchestrator_for(a, b).resolve(
            Capability.FETCH_COVER, "9780451524935", provider_order=["b"]
        )

        assert outcome.source == "b"
        assert a.calls == 0


# ============================================================================
# Best Of Tests
# ============================================================================


class TestBestOf:
    """Tests for confidence-based ISBN resolution."""

    async def test_stops_at_acceptance_threshold(self, context):
        a = StubProvider(context, "a", result=resolution("a", 50))
        b = StubProvider(context, "b", result=resolution("b", 70))
        c = StubProvider(context, "c", result=resolution("c", 90))

        outcome = await orchestrator_for(a, b, c, accept_confidence=60).resolve(
            Capability.RESOLVE_ISBN, "1984", "George Orwell"
        )

        assert outcome.source == "b"
        assert c.calls == 0

    async def test_best_when_none_accepted(self, context):
        a = StubProvider(context, "a", result=resolution("a", 40))
        b = StubProvider(context, "b", result=resolution("b", 55))

        outcome = await orchestrator_for(a, b, accept_confidence=60).resolve(
            Capability.RESOLVE_ISBN, "1984"
        )

        assert outcome.source == "b"
        assert len(outcome.results) == 2

    async def test_tie_keeps_earlier_provider(self, context):
        a = StubProvider(context, "a", result=resolution("a", 50))
        b = StubProvider(context, "b", result=resolution("b", 50))

        outcome = await orchestrator_for(a, b, accept_confidence=90).resolve(
            Capability.RESOLVE_ISBN, "1984"
        )

        assert outcome.source == "a"

    async def test_resolution_without_isbn_not_counted(self, context):
        empty = StubProvider(context, "empty", result=ISBNResolution(source="empty"))
        b = StubProvider(context, "b", result=resolution("b", 70))

        outcome = await orchestrator_for(empty, b).resolve(Capability.RESOLVE_ISBN, "1984")

        assert outcome.source == "b"
        assert outcome.attempts[0].status == AttemptStatus.NOT_FOUND

    async def test_mode_override(self, context):
        a = StubProvider(context, "a", result=resolution("a", 10))
        b = StubProvider(context, "b", result=resolution("b", 90))

        outcome = await orchestrator_for(a, b).resolve(
            Capability.RESOLVE_ISBN, "1984", mode=ResolutionMode.FIRST_MATCH
        )

        assert outcome.source == "a"
        assert b.calls == 0


# ============================================================================
# Aggregate Tests
# ============================================================================


class TestAggregate:
    """Tests for concurrent aggregation."""

    async def test_all_providers_run(self, context):
        a = StubProvider(context, "a", result=BookMetadata(source="a", title="1984"))
        b = StubProvider(context, "b", error=ProviderUnavailableError("down", source="b"))
        c = StubProvider(context, "c", result=BookMetadata(source="c", title="1984"))

        outcome = await orchestrator_for(a, b, c).resolve(Capability.FETCH_METADATA, "9780451524935")

        assert [r.source for r in outcome.results] == ["a", "c"]
        assert outcome.source == "a"
        assert {x.provider: x.status for x in outcome.attempts} == {
            "a": AttemptStatus.SUCCESS,
            "b": AttemptStatus.ERROR,
            "c": AttemptStatus.SUCCESS,
        }

    async def test_runs_concurrently(self, context):
        providers = [
            StubProvider(context, name, result=BookMetadata(source=name), delay=0.2)
            for name in ("a", "b", "c")
        ]

        outcome = await asyncio.wait_for(
            orchestrator_for(*providers).resolve(Capability.FETCH_METADATA, "9780451524935"),
            timeout=0.5,
        )

        assert len(outcome.results) == 3


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, False),
        ([], False),
        ({}, False),
        (ISBNResolution(source="x"), False),
        ([1], True),
        (ISBNResolution(source="x", isbn="9780451524935"), True),
    ],
)
def test_is_present(value, expected):
    assert is_present(value) is expected
