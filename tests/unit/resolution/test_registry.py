"""Tests for the provider registry."""

from __future__ import annotations

import asyncio
from typing import ClassVar

import pytest

from bibresolve.core.exceptions import RegistrationError
from bibresolve.core.types import Capability, ProviderClass, ProviderName
from bibresolve.resolution.base import BaseProvider
from bibresolve.resolution.registry import ProviderRegistry


class PaidProvider(BaseProvider):
    NAME: ClassVar[str] = "paid-test"
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.PAID
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({Capability.FETCH_RATINGS})

    async def fetch_ratings(self, isbn: str):
        return None


class FreeProvider(PaidProvider):
    NAME: ClassVar[str] = "free-test"
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.FREE


class SlowProvider(FreeProvider):
    NAME: ClassVar[str] = "slow-test"

    async def is_available(self) -> bool:
        await asyncio.sleep(1)
        return True


class BrokenProvider(FreeProvider):
    NAME: ClassVar[str] = "broken-test"

    async def is_available(self) -> bool:
        raise RuntimeError("health endpoint down")


class TestRegistration:
    """Tests for register and lookup."""

    def test_duplicate_name_rejected(self, context):
        registry = ProviderRegistry()
        registry.register(FreeProvider(context))

        with pytest.raises(RegistrationError):
            registry.register(FreeProvider(context))

    def test_free_before_paid(self, context):
        """Priority is by class, whatever the registration order."""
        registry = ProviderRegistry()
        registry.register_all([PaidProvider(context), FreeProvider(context)])

        names = [p.name for p in registry.providers_for(Capability.FETCH_RATINGS)]
        assert names == ["free-test", "paid-test"]

    def test_unknown_capability_empty(self, context):
        registry = ProviderRegistry()
        registry.register(FreeProvider(context))

        assert registry.providers_for(Capability.GENERATE_BOOKS) == []
        assert registry.has_capability(Capability.GENERATE_BOOKS) is False

    def test_get_and_contains(self, context):
        registry = ProviderRegistry()
        registry.register(FreeProvider(context))

        assert "free-test" in registry
        assert registry.get("free-test") is not None
        assert registry.get("missing") is None
        assert len(registry) == 1


class TestDefaultProviders:
    """Tests for the built-in provider set."""

    def test_from_settings(self, context):
        registry = ProviderRegistry.from_settings(context)
        assert len(registry) == 7

    def test_isbn_resolution_order(self, context):
        registry = ProviderRegistry.from_settings(context)

        names = [p.name for p in registry.providers_for(Capability.RESOLVE_ISBN)]
        assert names == [
            ProviderName.OPEN_LIBRARY,
            ProviderName.GOOGLE_BOOKS,
            ProviderName.ARCHIVE_ORG,
            ProviderName.WIKIDATA,
            ProviderName.ISBNDB,
        ]

    def test_edition_variants_free_first(self, context):
        registry = ProviderRegistry.from_settings(context)

        names = [p.name for p in registry.providers_for(Capability.FETCH_EDITION_VARIANTS)]
        assert names == [ProviderName.LIBRARYTHING, ProviderName.ISBNDB]

    def test_stats(self, context):
        stats = ProviderRegistry.from_settings(context).stats()

        assert stats["total_providers"] == 7
        assert stats["by_class"] == {"free": 5, "paid": 1, "ai": 1}
        assert stats["by_capability"]["generate_books"] == [ProviderName.GEMINI]


class TestAvailability:
    """Tests for concurrent availability filtering."""

    async def test_failing_check_excluded(self, context):
        registry = ProviderRegistry()
        registry.register_all([FreeProvider(context), BrokenProvider(context)])

        available = await registry.available_providers(Capability.FETCH_RATINGS)
        assert [p.name for p in available] == ["free-test"]

    async def test_slow_check_excluded(self, context):
        registry = ProviderRegistry(availability_timeout=0.01)
        registry.register_all([SlowProvider(context), FreeProvider(context)])

        available = await registry.available_providers(Capability.FETCH_RATINGS)
        assert [p.name for p in available] == ["free-test"]

    async def test_order_kept(self, context):
        registry = ProviderRegistry()
        registry.register_all([PaidProvider(context), FreeProvider(context)])

        available = await registry.available_providers(Capability.FETCH_RATINGS)
        assert [p.name for p in available] == ["free-test", "paid-test"]
